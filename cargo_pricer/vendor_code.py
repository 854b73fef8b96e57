"""
Vendor code decoding.

Vendor codes encode the supplier product id and an optional pack count,
e.g. "box_4821_3" is three units of supplier product 4821.
"""

import re
from typing import Pattern, Union

from .models import DecodedVendorCode, VendorCodeDecodeError, VendorCodeMismatch

DELIMITER = "_"


def compile_pattern(pattern: Union[str, Pattern]) -> Pattern:
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


def parse_pack_count(segment: str) -> int:
    """
    Parse the pack count segment.
    Examples:
    - "3" → 3
    - "12" → 12
    - "x" → 1 (non-numeric falls back to a single unit)
    - "²" → 1 (only ASCII-style decimal digits count)
    - "" → 1
    """
    if segment.isdecimal():
        return int(segment)
    return 1


def decode_vendor_code(vendor_code: str, pattern: Union[str, Pattern],
                       use_pack_count: bool = True) -> DecodedVendorCode:
    """
    Decode a vendor code into (product_id, pack_count).

    Raises VendorCodeMismatch if the code does not match the pattern and
    VendorCodeDecodeError if it has fewer than two segments or decodes to a
    zero pack count.
    """
    if not compile_pattern(pattern).search(vendor_code or ""):
        raise VendorCodeMismatch(f"Vendor code does not match pattern: {vendor_code!r}",
                                 vendor_code=vendor_code)

    parts = vendor_code.split(DELIMITER)
    if len(parts) < 2 or not parts[1]:
        raise VendorCodeDecodeError(f"Cannot decode vendor code: {vendor_code!r}",
                                    vendor_code=vendor_code)

    pack_count = 1
    if len(parts) > 2 and use_pack_count:
        pack_count = parse_pack_count(parts[2])
    if pack_count < 1:
        raise VendorCodeDecodeError(f"Pack count must be positive: {vendor_code!r}",
                                    vendor_code=vendor_code)

    return DecodedVendorCode(product_id=parts[1], pack_count=pack_count)
