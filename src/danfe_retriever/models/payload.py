"""
Raw document payload handed from the downloader to the parser.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


@dataclass(frozen=True)
class RawDocumentPayload:
    """Downloaded XML bytes plus the portal's suggested filename."""
    content: bytes
    file_name: str
    path: Optional[Path] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> 'RawDocumentPayload':
        """
        Load a payload from a previously saved file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        return cls(content=path.read_bytes(), file_name=path.name, path=path)

    def remove(self) -> bool:
        """
        Delete the backing file, if any.

        Returns:
            True if a file was deleted, False if there was nothing to delete
        """
        if self.path is None or not self.path.exists():
            return False
        self.path.unlink()
        return True
