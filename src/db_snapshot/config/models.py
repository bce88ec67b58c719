"""Pydantic models for database profiles and scripting configuration."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Closed set of category directories.  "after_data" is developer-authored
# and never written by the scripter, but it is still a category.
CATEGORIES = frozenset(
    {
        "after_data",
        "assemblies",
        "check_constraints",
        "data",
        "defaults",
        "foreign_keys",
        "functions",
        "permissions",
        "procedures",
        "props",
        "roles",
        "schemas",
        "synonyms",
        "table_types",
        "tables",
        "triggers",
        "user_defined_types",
        "users",
        "views",
        "xmlschemacollections",
    }
)

# Hand-written by developers; scripting never clears or writes them.
AUTHORED_CATEGORIES = frozenset({"after_data"})


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class CategoryConfig(BaseModel):
    """Immutable whitelist of object categories to script and build.

    Example:
        >>> config = CategoryConfig(excluded=frozenset({"data"}))
        >>> "data" in config.active
        False
        >>> config.is_active("tables")
        True
    """

    model_config = ConfigDict(frozen=True)

    categories: frozenset[str] = CATEGORIES
    excluded: frozenset[str] = frozenset()

    @model_validator(mode="after")
    def _known_exclusions(self) -> "CategoryConfig":
        unknown = self.excluded - self.categories
        if unknown:
            raise ValueError(
                f"Unknown categories: {', '.join(sorted(unknown))}. "
                f"Valid categories: {', '.join(sorted(self.categories))}"
            )
        return self

    @property
    def active(self) -> frozenset[str]:
        return self.categories - self.excluded

    def is_active(self, category: str) -> bool:
        return category in self.active


class ScriptSettings(BaseModel):
    """The ``[script]`` table of db.toml."""

    dir: str = "db"
    excluded_categories: list[str] = Field(default_factory=list)
    data_tables: str | None = None  # regex of tables whose rows are exported
    data_tables_exclude: str | None = None
    default_schema: str = "dbo"

    def category_config(self) -> CategoryConfig:
        return CategoryConfig(excluded=frozenset(self.excluded_categories))


class DatabaseConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile]
    script: ScriptSettings = Field(default_factory=ScriptSettings)
