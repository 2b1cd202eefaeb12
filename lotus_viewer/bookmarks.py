"""Read-only view over the bookmarked studies owned by the host application.

The viewer never persists bookmarks itself: it sorts and displays the records
it is given and forwards removals to the owner's callback.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Union

import pandas as pd

PUBMED_URL = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"
SORT_ORDERS = ("time", "journal", "year")


@dataclass(frozen=True)
class Bookmark:
    id: str
    title: str = ""
    journal: str = ""
    year: Optional[int] = None
    authors: str = ""
    pmid: str = ""
    bookmarked_at: float = 0.0

    @classmethod
    def from_record(cls, record: Mapping) -> "Bookmark":
        """Build a bookmark from a loosely typed mapping (camelCase accepted)."""

        data = dict(record)
        if "bookmarkedAt" in data and "bookmarked_at" not in data:
            data["bookmarked_at"] = data.pop("bookmarkedAt")
        known = {f.name for f in fields(cls)}
        clean = {k: v for k, v in data.items() if k in known and v is not None}
        clean["id"] = str(clean.get("id", ""))
        if "year" in clean:
            try:
                clean["year"] = int(clean["year"])
            except (TypeError, ValueError):
                clean["year"] = None
        for key in ("title", "journal", "authors", "pmid"):
            if key in clean:
                clean[key] = str(clean[key])
        try:
            clean["bookmarked_at"] = float(clean.get("bookmarked_at", 0.0))
        except (TypeError, ValueError):
            clean["bookmarked_at"] = 0.0
        return cls(**clean)

    @property
    def display_title(self) -> str:
        return self.title or "Untitled Study"

    @property
    def external_url(self) -> str:
        return PUBMED_URL.format(pmid=self.pmid) if self.pmid else ""


class BookmarkList:
    """Bookmarks supplied by a collaborator, with an optional removal callback."""

    def __init__(
        self,
        records: Iterable[Union[Bookmark, Mapping]] = (),
        on_remove: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._items: List[Bookmark] = [
            r if isinstance(r, Bookmark) else Bookmark.from_record(r) for r in records
        ]
        self._on_remove = on_remove

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def ids(self) -> List[str]:
        return [b.id for b in self._items]

    def contains(self, bookmark_id) -> bool:
        return str(bookmark_id) in self.ids()

    def remove(self, bookmark_id) -> bool:
        """Ask the owner to remove *bookmark_id*; return ``False`` if impossible."""

        if self._on_remove is None or not self.contains(bookmark_id):
            return False
        self._on_remove(str(bookmark_id))
        return True

    def to_dataframe(self) -> pd.DataFrame:
        columns = [f.name for f in fields(Bookmark)]
        return pd.DataFrame([asdict(b) for b in self._items], columns=columns)

    def sorted(self, order: str = "time") -> List[Bookmark]:
        """Return bookmarks ordered by ``time`` (newest first), ``journal`` or ``year``.

        The sort is stable so ties keep the owner's order.
        """

        if order not in SORT_ORDERS:
            raise ValueError(f"Unknown bookmark order {order!r}; expected one of {SORT_ORDERS}")
        if not self._items:
            return []
        df = self.to_dataframe()
        if order == "time":
            key = df["bookmarked_at"].fillna(0.0)
            ascending = False
        elif order == "journal":
            key = df["journal"].fillna("").astype(str)
            ascending = True
        else:
            key = pd.to_numeric(df["year"], errors="coerce").fillna(0)
            ascending = False
        positions = key.sort_values(ascending=ascending, kind="mergesort").index
        return [self._items[i] for i in positions]

    def export_tsv(self, path: Union[str, Path], order: str = "time") -> Path:
        """Write the bookmarks in *order* as a tab separated table."""

        path = Path(path)
        ordered = self.sorted(order)
        rows = BookmarkList(ordered).to_dataframe()
        rows["url"] = [b.external_url for b in ordered]
        rows.to_csv(path, sep="\t", index=False)
        return path
