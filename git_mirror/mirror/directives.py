"""
Directives — Decode project descriptions into mirror directives.

A project opts into mirroring by putting a YAML document in its
description:

```yaml
origin: https://github.com/example/project.git
lfs: true
refspec:
  - +refs/heads/*:refs/heads/*
  - +refs/tags/*:refs/tags/*
```

`skip: true` excludes a project before any other field is looked at, so a
broken description on a deliberately skipped project never causes a
warning. Unknown keys are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator, model_validator

from ..errors import DirectiveError
from ..provider.base import ProjectRecord
from .config import MirrorOptions

logger = logging.getLogger(__name__)

_SKIP_FLAG = TypeAdapter(bool)


class DirectiveDescription(BaseModel):
    """Schema of the YAML document in a project description."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    origin: Optional[str] = None
    skip: bool = False
    destination: Optional[str] = None  # reserved, the project itself is the destination
    lfs: Optional[bool] = None
    refspec: Optional[List[str]] = None

    @field_validator("refspec", mode="before")
    @classmethod
    def _single_refspec(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @model_validator(mode="after")
    def _origin_required(self) -> "DirectiveDescription":
        if not self.skip and not (self.origin and self.origin.strip()):
            raise ValueError("origin is required unless skip is set")
        return self


@dataclass(frozen=True)
class Directive:
    """One resolved unit of mirroring."""

    name: str
    origin_url: str
    destination_url: str
    identity: str
    refspecs: Tuple[str, ...] = ()
    lfs_enabled: bool = False
    skip: bool = False

    @property
    def display_name(self) -> str:
        return f"{self.origin_url} -> {self.destination_url}"


def _is_skipped(value: Any) -> bool:
    """Read skip with the same coercion as DirectiveDescription.skip."""
    if value is None:
        return False
    try:
        return _SKIP_FLAG.validate_python(value)
    except ValidationError:
        return False


def decode_description(text: Optional[str], source: str = "") -> Optional[DirectiveDescription]:
    """
    Parse a project description.

    Returns None when the project is skipped, the decoded description
    otherwise. Raises DirectiveError when the description is not a valid
    directive.
    """
    try:
        data = yaml.safe_load(text or "")
    except yaml.YAMLError as e:
        raise DirectiveError(f"Invalid YAML: {e}", source) from e

    if isinstance(data, dict) and _is_skipped(data.get("skip")):
        return None

    if not isinstance(data, dict):
        raise DirectiveError("Description is not a YAML mapping", source)

    try:
        desc = DirectiveDescription(**{str(k): v for k, v in data.items()})
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'description'}: {err['msg']}"
            for err in e.errors()
        )
        raise DirectiveError(errors, source) from e

    return None if desc.skip else desc


@dataclass
class DirectiveStore:
    """
    Directives discovered for one run, in provider order.

    Holds only the directives to schedule; skipped and invalid projects
    are counted, and each invalid one leaves a warning. A project listed
    more than once is kept at its first position.
    """

    directives: List[Directive] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.directives)

    @classmethod
    def from_records(
        cls, records: Iterable[ProjectRecord], options: MirrorOptions
    ) -> "DirectiveStore":
        store = cls()
        for record in records:
            store.add(record, options)

        logger.info(
            f"[mirror] Discovered {store.total} directive(s), "
            f"{len(store.skipped)} skipped, {len(store.warnings)} invalid"
        )
        return store

    def add(self, record: ProjectRecord, options: MirrorOptions) -> Optional[Directive]:
        """Decode one record and keep the result if it should be mirrored."""
        try:
            desc = decode_description(record.description, record.web_url)
        except DirectiveError as e:
            logger.warning(f"[mirror] Ignoring {record.web_url}: {e.message}")
            self.warnings.append(str(e))
            return None

        if desc is None:
            logger.debug(f"[mirror] Skipping {record.web_url}")
            self.skipped.append(record.web_url)
            return None

        destination = record.http_url if options.use_http else record.ssh_url
        directive = Directive(
            name=record.name,
            origin_url=desc.origin.strip(),
            destination_url=destination,
            identity=record.web_url,
            refspecs=tuple(desc.refspec or ()),
            lfs_enabled=options.mirror_lfs if desc.lfs is None else desc.lfs,
        )
        if any(d.identity == directive.identity for d in self.directives):
            logger.warning(f"[mirror] Ignoring {record.web_url}: listed more than once")
            self.duplicates.append(record.web_url)
            return None

        logger.debug(f"[mirror] {directive.display_name}")
        self.directives.append(directive)
        return directive

