"""Model definitions for the reference SQLite engine.

Models are declared in code or loaded from YAML:

    model: user
    pluralName: users
    fields:
      - {name: id, type: int, primaryKey: true}
      - {name: email, type: string}
      - {name: status, type: string, default: pending}
      - {name: created_at, type: datetime}
    relations:
      posts: {model: post, foreignKey: author_id, kind: many}
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Field type -> SQLite storage type
STORAGE_TYPES: dict[str, str] = {
    "int": "INTEGER",
    "float": "REAL",
    "string": "TEXT",
    "bool": "INTEGER",
    "datetime": "TEXT",
    "json": "TEXT",
}


def get_storage_type(field_type: str) -> str:
    """Return the SQLite storage type for a field type.

    Raises:
        ValueError: For unknown field types
    """
    try:
        return STORAGE_TYPES[field_type]
    except KeyError:
        raise ValueError(
            f"Unknown field type '{field_type}'. "
            f"Allowed: {', '.join(sorted(STORAGE_TYPES))}"
        ) from None


@dataclass
class FieldDefinition:
    name: str
    type: str = "string"
    primary_key: bool = False
    default: Any = None


@dataclass
class RelationConfig:
    """Configuration for a relation between two models.

    Attributes:
        model: The related model name
        foreign_key: Column holding the reference. For kind "many" it lives
            on the related model; for kind "one" it lives on this model.
        kind: "many" (one-to-many) or "one" (many-to-one)
    """

    model: str
    foreign_key: str
    kind: str = "many"


@dataclass
class ModelDefinition:
    name: str
    fields: list[FieldDefinition]
    primary_key: str = "id"
    plural_name: str = ""
    relations: dict[str, RelationConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.name = self.name.lower()
        if not self.plural_name:
            self.plural_name = self.name + "s"
        for f in self.fields:
            if f.primary_key:
                self.primary_key = f.name
                break

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelDefinition":
        """Create a ModelDefinition from a YAML/JSON dict."""
        fields = [
            FieldDefinition(
                name=f["name"],
                type=f.get("type", "string"),
                primary_key=f.get("primaryKey", False),
                default=f.get("default"),
            )
            for f in data.get("fields", [])
        ]

        for f in fields:
            get_storage_type(f.type)

        relations = {
            name: RelationConfig(
                model=rel["model"].lower(),
                foreign_key=rel["foreignKey"],
                kind=rel.get("kind", "many"),
            )
            for name, rel in (data.get("relations") or {}).items()
        }
        for name, rel in relations.items():
            if rel.kind not in ("one", "many"):
                raise ValueError(f"Relation '{name}' has invalid kind '{rel.kind}'")

        return cls(
            name=data["model"],
            fields=fields,
            plural_name=data.get("pluralName", ""),
            relations=relations,
        )


def load_models(path: Path | str) -> list[ModelDefinition]:
    """Load model definitions from a YAML file or a directory of YAML files.

    A file may hold one model mapping or a list of them.

    Raises:
        FileNotFoundError: If the path does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model schema not found at {path}")

    files = sorted(path.glob("*.yaml")) if path.is_dir() else [path]

    models: list[ModelDefinition] = []
    for yaml_file in files:
        with open(yaml_file) as f:
            data = yaml.safe_load(f)
        if not data:
            continue
        entries = data if isinstance(data, list) else [data]
        models.extend(ModelDefinition.from_dict(entry) for entry in entries if "model" in entry)
    return models
