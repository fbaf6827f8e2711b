# Third-party imports
import pytest

# PlanMark imports
from planmark import models


@pytest.mark.usefixtures("clean_db")
class TestProjects:
    def test_create_defaults(self):
        project = models.create_project("user-1", "Level 2", "/uploads/p/plan.pdf", pdf_page_count=4)
        data = project.to_dict()
        assert data["status"] == models.STATUS_DRAFT
        assert data["current_page"] == 1
        assert data["pdf_page_count"] == 4
        assert data["last_updated"]
        assert models.get_project(project.id).name == "Level 2"

    def test_list_newest_first_per_user(self):
        old = models.create_project("user-1", "old", "/uploads/a.pdf")
        new = models.create_project("user-1", "new", "/uploads/b.pdf")
        models.create_project("user-2", "other", "/uploads/c.pdf")
        models.update_project(old.id, name="old but touched")
        assert [p.id for p in models.list_projects("user-1")] == [old.id, new.id]
        assert models.list_projects("nobody") == []

    def test_update_ignores_read_only_fields(self):
        project = models.create_project("user-1", "plan", "/uploads/a.pdf")
        stamp = project.last_updated
        models.update_project(project.id, user_id="intruder", current_page=3, status=models.STATUS_SAVED)
        again = models.get_project(project.id)
        assert again.user_id == "user-1"
        assert again.current_page == 3
        assert again.status == models.STATUS_SAVED
        assert again.last_updated >= stamp

    def test_update_missing(self):
        assert models.update_project("nope", name="x") is None

    def test_delete_removes_annotations(self):
        project = models.create_project("user-1", "plan", "/uploads/a.pdf")
        models.save_annotation(project.id, 1, [])
        assert models.delete_project(project.id)
        assert models.get_project(project.id) is None
        assert models.get_annotation(project.id, 1) is None
        assert not models.delete_project(project.id)


@pytest.mark.usefixtures("clean_db")
class TestAnnotations:
    def test_save_is_upsert(self):
        project = models.create_project("user-1", "plan", "/uploads/a.pdf")
        first = models.save_annotation(project.id, 2, [{"id": "annotations"}])
        second = models.save_annotation(project.id, 2, [{"id": "measurements"}])
        assert first.id == second.id
        assert models.get_annotation(project.id, 2).data == [{"id": "measurements"}]
        assert models.get_annotation(project.id, 1) is None

    def test_pages_are_independent(self):
        project = models.create_project("user-1", "plan", "/uploads/a.pdf")
        models.save_annotation(project.id, 1, ["one"])
        models.save_annotation(project.id, 2, ["two"])
        assert models.get_annotation(project.id, 1).data == ["one"]
        assert models.get_annotation(project.id, 2).to_dict()["page_number"] == 2
