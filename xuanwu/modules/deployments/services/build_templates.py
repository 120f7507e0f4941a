"""Dockerfile templates for runtime-based builds."""
import re
from collections.abc import Mapping

from pydantic import BaseModel

from xuanwu.modules.deployments.errors import ImageBuildError
from xuanwu.modules.projects.schemas import BuildType

_PLACEHOLDER = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")


class BuildTemplate(BaseModel):
    """Dockerfile template for one build type."""

    name: str
    build_type: BuildType
    description: str | None = None
    dockerfile: str
    defaults: dict[str, str] = {}


class NoTemplateFoundError(ImageBuildError):
    """Raised when no template is registered for a build type."""
    pass


def render_dockerfile(template: str, config: Mapping[str, str]) -> str:
    """
    Substitute ``{{KEY}}`` placeholders with configuration values.

    Placeholders without a value are left untouched.
    """
    return _PLACEHOLDER.sub(lambda m: str(config.get(m.group(1), m.group(0))), template)


JAVA_TEMPLATE = """FROM eclipse-temurin:{{JAVA_VERSION}}-jre
WORKDIR /app
COPY {{ARTIFACT_PATH}} app.jar
EXPOSE {{PORT}}
ENTRYPOINT ["java", "-jar", "app.jar"]
"""

PYTHON_TEMPLATE = """FROM python:{{PYTHON_VERSION}}-slim
WORKDIR /app
COPY requirements.txt .
RUN pip install --no-cache-dir -r requirements.txt
COPY . .
EXPOSE {{PORT}}
CMD {{START_COMMAND}}
"""

NODEJS_TEMPLATE = """FROM node:{{NODE_VERSION}}-alpine
WORKDIR /app
COPY package*.json ./
RUN npm ci --omit=dev
COPY . .
EXPOSE {{PORT}}
CMD {{START_COMMAND}}
"""


class BuildTemplateRegistry:
    """Registry for managing and selecting build templates."""

    def __init__(self):
        """Initialize registry with built-in templates."""
        self.templates: dict[BuildType, BuildTemplate] = {}
        self._register_builtin_templates()

    def _register_builtin_templates(self):
        """Register built-in templates."""
        self.register(BuildTemplate(
            name="java17",
            build_type=BuildType.JAVA17,
            description="Runnable jar on a Java 17 runtime",
            dockerfile=JAVA_TEMPLATE,
            defaults={"JAVA_VERSION": "17", "ARTIFACT_PATH": "target/*.jar", "PORT": "8080"},
        ))
        self.register(BuildTemplate(
            name="java21",
            build_type=BuildType.JAVA21,
            description="Runnable jar on a Java 21 runtime",
            dockerfile=JAVA_TEMPLATE,
            defaults={"JAVA_VERSION": "21", "ARTIFACT_PATH": "target/*.jar", "PORT": "8080"},
        ))
        self.register(BuildTemplate(
            name="python",
            build_type=BuildType.PYTHON,
            description="Python application installed from requirements.txt",
            dockerfile=PYTHON_TEMPLATE,
            defaults={"PYTHON_VERSION": "3.12", "PORT": "8080", "START_COMMAND": '["python", "main.py"]'},
        ))
        self.register(BuildTemplate(
            name="nodejs",
            build_type=BuildType.NODEJS,
            description="Node.js application installed with npm",
            dockerfile=NODEJS_TEMPLATE,
            defaults={"NODE_VERSION": "20", "PORT": "8080", "START_COMMAND": '["npm", "start"]'},
        ))

    def register(self, template: BuildTemplate):
        """Register a template, replacing any existing one for its build type."""
        self.templates[template.build_type] = template

    def get_template(self, build_type: BuildType) -> BuildTemplate | None:
        """Get the template for a build type."""
        return self.templates.get(build_type)

    def render(self, build_type: BuildType, build_config: Mapping[str, str] | None = None) -> str:
        """Render the Dockerfile for a build type with template defaults overridden by the build config."""
        template = self.get_template(build_type)
        if not template:
            raise NoTemplateFoundError(f"No build template found for build type: {build_type.value}")

        return render_dockerfile(template.dockerfile, {**template.defaults, **(build_config or {})})
