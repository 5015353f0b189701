import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ai_coder.errors import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_MODEL = "gpt-4-1106-preview"
DEFAULT_EMBEDDING_MODEL = "text-embedding-ada-002"
DEFAULT_CATALOG_DIR = Path(__file__).resolve().parent / "model"


class Settings(BaseModel):
    """Runtime settings passed explicitly into providers and workflows.

    Build one with :meth:`from_env` at the CLI boundary; tests construct
    it directly so nothing reads the process environment behind their
    back.

    Args:
        api_key: Credential for the model service.
        base_url: Optional OpenAI-compatible endpoint.
        model: Chat model used by every workflow.
        embedding_model: Model used to embed catalog queries.
        catalog_dir: Directory holding the ``lucide-react`` and
            ``shadcn-ui`` indexes built by ``scripts/build_catalog.py``.
        debug: Print full error details and debug logs.
    """

    model_config = ConfigDict(frozen=True)

    api_key: str | None = None
    base_url: str | None = None
    model: str = DEFAULT_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    catalog_dir: Path = DEFAULT_CATALOG_DIR
    debug: bool = False

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "Settings":
        env = os.environ if environ is None else environ
        values = {
            "api_key": env.get("OPENAI_API_KEY") or None,
            "base_url": env.get("OPENAI_BASE_URL") or None,
            "model": env.get("AI_CODER_MODEL") or DEFAULT_MODEL,
            "embedding_model": (
                env.get("AI_CODER_EMBEDDING_MODEL") or DEFAULT_EMBEDDING_MODEL
            ),
            "catalog_dir": env.get("AI_CODER_CATALOG_DIR") or DEFAULT_CATALOG_DIR,
            "debug": bool(env.get("DEBUG")),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class RepoConfig(BaseModel):
    owner: str | None = None
    name: str | None = None
    base_branch: str = Field(default="main", alias="baseBranch")

    model_config = ConfigDict(populate_by_name=True)


class ProjectConfig(BaseModel):
    """The parts of ``package.json`` the workflows read.

    Unknown keys are ignored. The ``ai.repo`` block configures the pull
    request workflow::

        {"ai": {"repo": {"owner": "me", "name": "app", "baseBranch": "dev"}}}
    """

    name: str | None = None
    description: str | None = None
    repo: RepoConfig = Field(default_factory=RepoConfig)

    @classmethod
    def load(cls, path: Path | str = "package.json") -> "ProjectConfig":
        """Read *path*; a missing or unreadable file yields defaults."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf8"))
        except FileNotFoundError:
            return cls()
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable {path}: {e}")
            return cls()
        if not isinstance(data, dict):
            return cls()

        ai = data.get("ai")
        repo = (ai.get("repo") if isinstance(ai, dict) else None) or {}
        try:
            return cls(
                name=data.get("name") if isinstance(data.get("name"), str) else None,
                description=(
                    data.get("description")
                    if isinstance(data.get("description"), str) else None
                ),
                repo=RepoConfig.model_validate(repo),
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid ai.repo block in {path}: {e}") from e

    def require_repo(self) -> tuple[str, str]:
        if not self.repo.owner or not self.repo.name:
            raise ConfigurationError(
                "The package.json file is missing the ai.repo.owner "
                "and/or ai.repo.name fields."
            )
        return self.repo.owner, self.repo.name
