"""
File-backed scenario and execution stores.

Scenarios live one per file as JSON or YAML (``<id>.json``, ``<id>.yaml``,
``<id>.yml``); a scenario file without an ``id`` takes its id from the file
name. Executions are written one per ``<id>.json`` file, atomically.
"""

import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import (
    ExecutionNotFoundError,
    PersistenceError,
    ScenarioNotFoundError,
)
from ..core.logging_config import get_logger
from ..execution.models import Execution, Scenario

logger = get_logger(__name__)

SCENARIO_SUFFIXES = (".json", ".yaml", ".yml")


def _write_atomic(path: Path, content: str) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class JsonFileScenarioStore:
    """Scenario store over a directory of JSON/YAML files."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path_for(self, scenario_id: str) -> Optional[Path]:
        for suffix in SCENARIO_SUFFIXES:
            path = self.directory / f"{scenario_id}{suffix}"
            if path.is_file():
                return path
        return None

    def _load(self, path: Path) -> Scenario:
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise PersistenceError(
                f"Cannot read scenario file {path}: {e}",
                record_id=path.stem,
                operation="read",
            )

        if not isinstance(data, dict):
            raise PersistenceError(
                f"Scenario file {path} does not contain a mapping",
                record_id=path.stem,
                operation="read",
            )
        data.setdefault("id", path.stem)

        try:
            return Scenario.model_validate(data)
        except PydanticValidationError as e:
            raise PersistenceError(
                f"Invalid scenario in {path}: {e}",
                record_id=path.stem,
                operation="read",
            )

    def get(self, scenario_id: str) -> Scenario:
        path = self._path_for(scenario_id)
        if path is None:
            raise ScenarioNotFoundError(scenario_id)
        return self._load(path)

    def list(self) -> List[Scenario]:
        """All readable scenarios sorted by name; unreadable files are skipped."""
        if not self.directory.is_dir():
            return []

        scenarios = []
        for path in sorted(self.directory.iterdir()):
            if path.suffix not in SCENARIO_SUFFIXES or not path.is_file():
                continue
            try:
                scenarios.append(self._load(path))
            except PersistenceError as e:
                logger.warning(f"Skipping scenario file: {e.message}")
        return sorted(scenarios, key=lambda s: s.name)

    def save(self, scenario: Scenario) -> Path:
        path = self._path_for(scenario.id) or self.directory / f"{scenario.id}.json"
        data = scenario.model_dump(mode="json")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            if path.suffix == ".json":
                content = json.dumps(data, indent=2, ensure_ascii=False)
            else:
                content = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
            _write_atomic(path, content)
        except OSError as e:
            raise PersistenceError(
                f"Cannot write scenario {scenario.id}: {e}",
                record_id=scenario.id,
                operation="write",
            )
        return path

    def delete(self, scenario_id: str) -> bool:
        path = self._path_for(scenario_id)
        if path is None:
            return False
        try:
            path.unlink()
        except OSError as e:
            raise PersistenceError(
                f"Cannot delete scenario {scenario_id}: {e}",
                record_id=scenario_id,
                operation="delete",
            )
        return True


class JsonFileExecutionStore:
    """Execution store writing one JSON document per execution."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path_for(self, execution_id: str) -> Path:
        return self.directory / f"{execution_id}.json"

    def save(self, execution: Execution) -> Path:
        path = self._path_for(execution.id)
        content = json.dumps(execution.model_dump(mode="json"), indent=2, ensure_ascii=False)
        try:
            with self._lock:
                self.directory.mkdir(parents=True, exist_ok=True)
                _write_atomic(path, content)
        except OSError as e:
            raise PersistenceError(
                f"Cannot write execution {execution.id}: {e}",
                record_id=execution.id,
                operation="write",
            )
        logger.debug(f"Saved execution {execution.id} to {path}")
        return path

    def _load(self, path: Path) -> Execution:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data: Dict[str, Any] = json.load(f)
            return Execution.model_validate(data)
        except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
            raise PersistenceError(
                f"Cannot read execution file {path}: {e}",
                record_id=path.stem,
                operation="read",
            )

    def get(self, execution_id: str) -> Execution:
        path = self._path_for(execution_id)
        if not path.is_file():
            raise ExecutionNotFoundError(execution_id)
        return self._load(path)

    def list(self, limit: int = 50) -> List[Execution]:
        """Most recent executions first; unreadable files are skipped."""
        if not self.directory.is_dir():
            return []

        executions = []
        for path in self.directory.glob("*.json"):
            try:
                executions.append(self._load(path))
            except PersistenceError as e:
                logger.warning(f"Skipping execution file: {e.message}")
        executions.sort(key=lambda e: e.started_at, reverse=True)
        return executions[:limit]
