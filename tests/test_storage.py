# Third-party imports
import pytest

# PlanMark imports
from planmark.storage import Storage


@pytest.mark.usefixtures("clean_storage")
class TestLocalStorage:
    def test_save_and_get(self):
        key = Storage.save(b"%PDF-1.7", "proj/plan.pdf")
        assert key == "proj/plan.pdf"
        assert Storage.exists(key)
        assert Storage.get(key) == b"%PDF-1.7"

    def test_get_missing(self):
        assert not Storage.exists("proj/none.pdf")
        with pytest.raises(FileNotFoundError):
            Storage.get("proj/none.pdf")

    def test_list_is_not_recursive(self):
        Storage.save(b"a", "proj/plan.pdf")
        Storage.save(b"b", "proj/pages/page-1.png", content_type="image/png")
        assert Storage.list("proj") == ["plan.pdf"]
        assert Storage.list("proj/pages/") == ["page-1.png"]
        assert Storage.list("other") == []

    def test_delete_prefix(self):
        Storage.save(b"a", "proj/plan.pdf")
        Storage.save(b"b", "proj/pages/page-1.png")
        Storage.save(b"c", "keep/plan.pdf")
        assert Storage.delete_prefix("proj") == 2
        assert not Storage.exists("proj/plan.pdf")
        assert Storage.exists("keep/plan.pdf")
        assert Storage.delete_prefix("proj") == 0

    @pytest.mark.parametrize("key", ["../outside.pdf", "proj/../../outside.pdf"])
    def test_keys_cannot_escape_root(self, key):
        with pytest.raises(ValueError):
            Storage.save(b"x", key)
        assert not Storage.exists(key)
