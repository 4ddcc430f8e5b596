"""Asset and owner types shared by the uploader, normalizer and linker."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from lpo_uploader.errors import InvalidRequestError

_GID_PREFIX = "gid://shopify/"


class AssetKind(str, Enum):
    GENERIC_FILE = "GenericFile"
    MEDIA_IMAGE = "MediaImage"
    UNKNOWN = "Unknown"


class AssetStatus(str, Enum):
    READY = "Ready"
    PROCESSING = "Processing"
    FAILED = "Failed"


class OwnerType(str, Enum):
    ORDER = "Order"
    CUSTOMER = "Customer"


@dataclass(frozen=True)
class AssetReference:
    """Normalized result of a file upload.

    ``locator`` is a retrievable URL once ``status`` is READY and empty
    otherwise. ``identifier`` is the platform GID used to resolve a
    PROCESSING asset. ``discriminator`` keeps the raw ``__typename`` so
    unknown subtypes can be diagnosed.
    """

    kind: AssetKind
    status: AssetStatus
    locator: str = ""
    identifier: str = ""
    discriminator: str | None = None
    errors: tuple[str, ...] = ()

    @property
    def is_linkable(self) -> bool:
        return self.status is AssetStatus.READY and bool(self.locator)


@dataclass(frozen=True)
class OwnerRecord:
    """A Shopify order or customer that metafields can be attached to."""

    owner_type: OwnerType
    owner_id: str

    def __post_init__(self):
        raw = str(self.owner_id).strip()
        if not raw:
            raise InvalidRequestError(f"{self.owner_type.value} id is required")
        if raw.startswith(_GID_PREFIX):
            expected = f"{_GID_PREFIX}{self.owner_type.value}/"
            if not raw.startswith(expected):
                raise InvalidRequestError(
                    f"{raw} is not a {self.owner_type.value} id"
                )
            raw = raw[len(expected):]
        if not raw:
            raise InvalidRequestError(f"{self.owner_type.value} id is required")
        object.__setattr__(self, "owner_id", raw)

    @property
    def gid(self) -> str:
        return f"{_GID_PREFIX}{self.owner_type.value}/{self.owner_id}"

    @classmethod
    def order(cls, owner_id: str | int) -> OwnerRecord:
        return cls(OwnerType.ORDER, str(owner_id))

    @classmethod
    def customer(cls, owner_id: str | int) -> OwnerRecord:
        return cls(OwnerType.CUSTOMER, str(owner_id))


def owners_for(order_id: str | int, customer_id: str | int | None = None) -> list[OwnerRecord]:
    """Order owner plus the customer owner when a customer id is present."""
    owners = [OwnerRecord.order(order_id)]
    if customer_id is not None and str(customer_id).strip():
        owners.append(OwnerRecord.customer(customer_id))
    return owners


@dataclass(frozen=True)
class LinkRequest:
    """One locator to write into the namespace/key slot of each owner."""

    locator: str
    owners: tuple[OwnerRecord, ...]
    namespace: str = "custom"
    key: str = "lpo_file"
    value_type: str = "single_line_text_field"

    def __post_init__(self):
        if not self.locator:
            raise InvalidRequestError("Cannot link an empty file locator")
        if not self.owners:
            raise InvalidRequestError("At least one owner is required")


@dataclass(frozen=True)
class Ack:
    """Metafield written by a successful link call."""

    owner: OwnerRecord
    metafield_id: str
    value: str


@dataclass
class LinkResult:
    owner: OwnerRecord
    ack: Ack | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.ack is not None

    def to_dict(self) -> dict:
        data = {
            "ownerType": self.owner.owner_type.value,
            "ownerId": self.owner.owner_id,
            "ok": self.ok,
        }
        if self.error is not None:
            data["error"] = getattr(self.error, "message", str(self.error))
        return data


@dataclass
class LinkReport:
    """Per-owner results of one LinkRequest. Partial failure is not success."""

    locator: str
    results: list[LinkResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.results) and all(r.ok for r in self.results)

    @property
    def failures(self) -> list[LinkResult]:
        return [r for r in self.results if not r.ok]

    def to_list(self) -> list[dict]:
        return [r.to_dict() for r in self.results]
