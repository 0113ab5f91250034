"""Week-keyed persistence for processed outputs.

Each run is stored whole under its week id; saving the same week again replaces it.
``JsonFileWeekStore`` keeps every week in one JSON document, ``InMemoryWeekStore``
backs tests and throwaway sessions.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from allocator.records import ProcessedOutput


logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when the week store cannot be read or written."""


class WeekStore(Protocol):
    def save(self, output: ProcessedOutput) -> None: ...

    def load(self, week_id: Optional[str]) -> Optional[ProcessedOutput]: ...

    def list_keys(self) -> List[str]: ...

    def delete(self, week_id: str) -> None: ...

    def clear_all(self) -> None: ...


class InMemoryWeekStore:
    def __init__(self) -> None:
        self._outputs: Dict[str, dict] = {}

    def save(self, output: ProcessedOutput) -> None:
        self._outputs[output.week_id] = output.to_dict()

    def load(self, week_id: Optional[str]) -> Optional[ProcessedOutput]:
        if not week_id or week_id not in self._outputs:
            return None
        return ProcessedOutput.from_dict(self._outputs[week_id])

    def list_keys(self) -> List[str]:
        return sorted(self._outputs)

    def delete(self, week_id: str) -> None:
        self._outputs.pop(week_id, None)

    def clear_all(self) -> None:
        self._outputs.clear()


class JsonFileWeekStore:
    """All weeks in a single JSON file: ``{week_id: output_dict}``."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise StorageError(f"failed to read stored outputs from {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"stored outputs in {self.path} are not a week mapping")
        return data

    def _write(self, data: Dict[str, dict]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".weeks-", suffix=".json")
        except OSError as exc:
            raise StorageError(f"failed to write stored outputs to {self.path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as exc:
            Path(tmp).unlink(missing_ok=True)
            raise StorageError(f"failed to write stored outputs to {self.path}: {exc}") from exc

    def save(self, output: ProcessedOutput) -> None:
        data = self._read()
        data[output.week_id] = output.to_dict()
        self._write(data)
        logger.info("saved week %s (%d records) to %s", output.week_id, len(output.records), self.path)

    def load(self, week_id: Optional[str]) -> Optional[ProcessedOutput]:
        if not week_id:
            return None
        raw = self._read().get(week_id)
        if raw is None:
            return None
        try:
            return ProcessedOutput.from_dict(raw)
        except (KeyError, TypeError) as exc:
            raise StorageError(f"stored week {week_id} is malformed: {exc}") from exc

    def list_keys(self) -> List[str]:
        return sorted(self._read())

    def delete(self, week_id: str) -> None:
        data = self._read()
        if data.pop(week_id, None) is not None:
            self._write(data)
            logger.info("deleted week %s", week_id)

    def clear_all(self) -> None:
        if self.path.exists():
            try:
                self.path.unlink()
            except OSError as exc:
                raise StorageError(f"failed to clear {self.path}: {exc}") from exc
        logger.info("cleared all stored weeks")
