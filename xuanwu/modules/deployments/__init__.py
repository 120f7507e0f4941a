"""Deployments module: build-and-deploy pipeline for applications."""
from .models import Deployment
from .routes import router

__all__ = [
    "Deployment",
    "router",
]
