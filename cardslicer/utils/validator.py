# validator.py

import json
import logging
from pathlib import Path
from typing import Optional, Tuple

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match
from referencing import Registry, Resource

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas"


class SchemaValidator:
    # document kind → schema filename
    KIND_MAP = {
        "document": "settings_document.json",
        "extraction": "extraction_settings.json",
        "output": "output_settings.json",
        "mode": "layout_mode.json",
    }

    def __init__(self, schema_dir: Path = SCHEMA_DIR):
        self.schema_dir = Path(schema_dir)
        self.schema_store = self._load_schemas()
        self.registry = Registry().with_resources(
            (uri, Resource.from_contents(schema)) for uri, schema in self.schema_store.items()
        )

    def _load_schemas(self) -> dict:
        """Load every .json and key the store by both filename and $id (if present)."""
        store = {}
        for schema_file in sorted(self.schema_dir.glob("*.json")):
            try:
                schema = json.loads(schema_file.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                logger.error("JSON error in schema %s", schema_file.name)
                raise
            store[schema_file.name] = schema
            sid = schema.get("$id")
            if sid and sid != schema_file.name:
                store[sid] = schema
        return store

    def validate(self, data: dict, kind: str = "document") -> Tuple[bool, Optional[str]]:
        """
        Validate `data` against the schema registered for `kind`.
        Returns (True, None) on success, or (False, "Error message") on failure.
        """
        key = self.KIND_MAP.get(kind, kind)
        schema = self.schema_store.get(key)
        if not schema:
            raise FileNotFoundError(f"Schema '{key}' not found in {self.schema_dir!r}")

        validator = Draft202012Validator(schema, registry=self.registry)
        error = best_match(validator.iter_errors(data))
        if error is None:
            return True, None
        # human-friendly path like "extractionSettings->grid->rows"
        path = "->".join(map(str, error.path)) or "(root)"
        return False, f"Validation Error in {path}: {error.message}"
