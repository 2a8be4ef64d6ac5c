"""JSONL utilities for reading and appending JSON Lines using orjson."""

from collections.abc import Iterator
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Union

import orjson


class JSONLReader:
    """Reader for JSONL (JSON Lines) files."""

    def __init__(self, file_path: Union[str, Path], skip_invalid: bool = True) -> None:
        """
        Initialize JSONL reader.

        Args:
            file_path: Path to the JSONL file
            skip_invalid: Skip lines that fail to parse instead of raising
        """
        self.file_path = Path(file_path)
        self.skip_invalid = skip_invalid
        self.invalid_lines = 0

    def iterate(self) -> Iterator[Dict[str, Any]]:
        """
        Iterate over objects in the file; a missing file yields nothing.

        Yields:
            Parsed JSON objects
        """
        if not self.file_path.exists():
            return
        with open(self.file_path, "rb") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    obj = orjson.loads(line)
                except orjson.JSONDecodeError:
                    if not self.skip_invalid:
                        raise
                    # A writer may have been cut off mid-line
                    self.invalid_lines += 1
                    continue
                if isinstance(obj, dict):
                    yield obj

    def read_all(self) -> List[Dict[str, Any]]:
        return list(self.iterate())


class JSONLWriter:
    """Append-oriented writer for JSONL files."""

    def __init__(self, file_path: Union[str, Path], mode: str = "a") -> None:
        """
        Initialize JSONL writer.

        Args:
            file_path: Path to the output JSONL file
            mode: File open mode ("w" for write, "a" for append)
        """
        self.file_path = Path(file_path)
        self.mode = mode
        self._file: Optional[IO[Any]] = None

        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    def __enter__(self) -> "JSONLWriter":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        self.close()

    def write(self, data: Dict[str, Any]) -> None:
        json_bytes = orjson.dumps(
            data, option=orjson.OPT_APPEND_NEWLINE | orjson.OPT_NON_STR_KEYS
        )
        if self._file is None:
            raise RuntimeError("Writer not opened. Use as context manager or call open().")
        self._file.write(json_bytes)

    def write_batch(self, data_list: List[Dict[str, Any]]) -> None:
        for data in data_list:
            self.write(data)

    def open(self) -> None:
        if self._file is None:
            self._file = open(self.file_path, self.mode + "b")

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None


def append_jsonl(data: List[Dict[str, Any]], file_path: Union[str, Path]) -> None:
    """
    Append objects to a JSONL file, creating it if needed.

    Args:
        data: List of dictionaries to append
        file_path: Path to the JSONL file
    """
    with JSONLWriter(file_path, mode="a") as writer:
        writer.write_batch(data)


def read_jsonl(file_path: Union[str, Path]) -> List[Dict[str, Any]]:
    return JSONLReader(file_path).read_all()
