from __future__ import annotations

import re
from dataclasses import dataclass

from relay.core.structured import as_str_dict, get_str

STATUS_FINISHED = "finished"
RESULT_PASSED = "passed"


@dataclass(frozen=True, slots=True)
class Artifact:
    """A build output listed for one revision.

    ``download_url`` is the identity key used for download deduplication.
    """

    name: str
    download_url: str
    type: str | None = None

    @classmethod
    def from_payload(cls, obj: object) -> Artifact | None:
        data = as_str_dict(obj)
        if data is None:
            return None
        name = get_str(data, "name")
        url = get_str(data, "download_url")
        if name is None or url is None:
            return None
        return cls(name=name, download_url=url, type=get_str(data, "type"))


@dataclass(frozen=True, slots=True)
class RevisionInfo:
    """Aggregated CI state of a revision.

    Exactly one of ``is_built_successfully``, ``is_failed`` and ``is_pending``
    holds for any status/result pair.
    """

    status: str
    result: str

    @property
    def is_built_successfully(self) -> bool:
        return self.status == STATUS_FINISHED and self.result == RESULT_PASSED

    @property
    def is_failed(self) -> bool:
        return self.status == STATUS_FINISHED and self.result != RESULT_PASSED

    @property
    def is_pending(self) -> bool:
        return self.status != STATUS_FINISHED


@dataclass(frozen=True, slots=True)
class FilterOptions:
    """Name filters applied to an artifact listing.

    A missing ``include_names`` matches everything; a missing
    ``exclude_names`` matches nothing.
    """

    include_names: re.Pattern[str] | None = None
    exclude_names: re.Pattern[str] | None = None

    def merged_over(self, default: FilterOptions | None) -> FilterOptions:
        """Fill unset keys from ``default``; keys set here win."""
        if default is None:
            return self
        return FilterOptions(
            include_names=self.include_names or default.include_names,
            exclude_names=self.exclude_names or default.exclude_names,
        )

    def matches(self, artifact: Artifact) -> bool:
        if self.include_names is not None and not self.include_names.search(artifact.name):
            return False
        if self.exclude_names is not None and self.exclude_names.search(artifact.name):
            return False
        return True
