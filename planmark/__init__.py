"""PlanMark: floor-plan PDF annotation editor and its page/annotation server."""

__version__ = "0.1.0"
