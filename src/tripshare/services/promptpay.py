"""PromptPay receiving-id extraction from scanned EMVCo QR text.

The payload is a flat run of ``tag(2) + length(2 digits) + value`` records;
the merchant account record (tag 29, or tag 26 carrying the PromptPay AID)
nests another such run whose sub-tags 01/02/03 hold the identifier.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass
from typing import Optional, Protocol

from tripshare.db.models import PromptPayKind
from tripshare.logging import get_logger

PROMPTPAY_AID = "A000000677010111"
MERCHANT_TAG = "29"
FALLBACK_MERCHANT_TAG = "26"
AID_SUBTAG = "00"
IDENTIFIER_SUBTAGS = ("01", "02", "03")
CRC_TAG = "63"

log = get_logger(__name__)


class TlvError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class PromptPayResult:
    id: Optional[str]
    kind: PromptPayKind


NOT_FOUND = PromptPayResult(id=None, kind=PromptPayKind.UNKNOWN)


def parse_tlv(data: str, *, strict: bool = False) -> dict[str, str]:
    """Read consecutive TLV records into a tag -> value map.

    Tolerant mode keeps whatever was read before a malformed header and lets
    the last value run short; strict mode raises :class:`TlvError` instead.
    """
    tags: dict[str, str] = {}
    index = 0

    while index < len(data):
        tag = data[index:index + 2]
        length_text = data[index + 2:index + 4]
        if len(length_text) != 2 or not (length_text.isascii() and length_text.isdigit()):
            if strict:
                raise TlvError(f"bad length field at offset {index}")
            break

        length = int(length_text)
        value = data[index + 4:index + 4 + length]
        if strict and len(value) != length:
            raise TlvError(f"value of tag {tag} is truncated")

        tags[tag] = value
        index += 4 + length

    return tags


def crc16_ccitt(data: str) -> str:
    """CRC-16/CCITT-FALSE as four upper-case hex digits."""
    return f"{binascii.crc_hqx(data.encode('ascii'), 0xFFFF):04X}"


def classify(raw: str) -> PromptPayResult:
    if len(raw) == 13 and raw.startswith("0066"):
        return PromptPayResult(id="0" + raw[4:], kind=PromptPayKind.PHONE)
    if len(raw) == 13:
        return PromptPayResult(id=raw, kind=PromptPayKind.NATIONAL_ID)
    if len(raw) == 15:
        return PromptPayResult(id=raw, kind=PromptPayKind.EWALLET)
    return PromptPayResult(id=raw, kind=PromptPayKind.UNKNOWN)


class PromptPayDecoder(Protocol):
    def decode(self, payload: str) -> PromptPayResult: ...


class TolerantPromptPayDecoder:
    strict = False

    def decode(self, payload: str) -> PromptPayResult:
        if not isinstance(payload, str) or not payload:
            return NOT_FOUND
        try:
            return self._extract(payload)
        except (TlvError, UnicodeEncodeError) as exc:
            log.info("promptpay.decode_failed", error=str(exc), strict=self.strict)
            return NOT_FOUND

    def _extract(self, payload: str) -> PromptPayResult:
        tags = parse_tlv(payload, strict=self.strict)
        merchant = self._merchant_record(tags)
        if not merchant:
            return NOT_FOUND

        subtags = parse_tlv(merchant, strict=self.strict)
        if not self._accept_aid(subtags.get(AID_SUBTAG)):
            return NOT_FOUND

        for subtag in IDENTIFIER_SUBTAGS:
            raw = subtags.get(subtag)
            if raw:
                return classify(raw)
        return NOT_FOUND

    def _merchant_record(self, tags: dict[str, str]) -> Optional[str]:
        record = tags.get(MERCHANT_TAG)
        if record:
            return record
        fallback = tags.get(FALLBACK_MERCHANT_TAG)
        if fallback and PROMPTPAY_AID in fallback:
            return fallback
        return None

    def _accept_aid(self, aid: Optional[str]) -> bool:
        # Sub-tag 00 is informational here; several issuers omit or vary it.
        return True


class StrictPromptPayDecoder(TolerantPromptPayDecoder):
    """Rejects payloads with a missing or wrong CRC, bad lengths or a foreign AID."""

    strict = True

    def _extract(self, payload: str) -> PromptPayResult:
        tags = parse_tlv(payload, strict=True)
        crc = tags.get(CRC_TAG)
        if crc is None or not payload.endswith(CRC_TAG + "04" + crc):
            raise TlvError("missing CRC record")
        expected = crc16_ccitt(payload[:-4])
        if crc.upper() != expected:
            raise TlvError(f"CRC mismatch: got {crc}, expected {expected}")
        return super()._extract(payload)

    def _accept_aid(self, aid: Optional[str]) -> bool:
        return aid == PROMPTPAY_AID


_tolerant = TolerantPromptPayDecoder()
_strict = StrictPromptPayDecoder()


def get_decoder(strict: bool = False) -> PromptPayDecoder:
    return _strict if strict else _tolerant


def decode(payload: str) -> PromptPayResult:
    return _tolerant.decode(payload)
