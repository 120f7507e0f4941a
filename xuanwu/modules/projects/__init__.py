"""Projects module: projects and their applications."""
from .models import Project, Application
from .routes import router

__all__ = [
    "Project",
    "Application",
    "router",
]
