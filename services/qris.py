"""
QR payloads for treasurer bank accounts.

`build_qris_payload` produces an EMV-style TLV string with a CRC16 trailer.
`build_transfer_info` produces the JSON account description that treasurer
QR codes actually carry; it is not an official QRIS and only shows the
account details when scanned.
"""
import json
import time
from datetime import datetime
from typing import Optional

from db.models import TreasurerAccount

MERCHANT_NAME = "Vibra Kas"
MERCHANT_CITY = "Jakarta"

# Substring match on the upper-cased bank name, first hit wins
BANK_CODES = (
    ("BCA", "014"),
    ("MANDIRI", "008"),
    ("BNI", "009"),
    ("BRI", "002"),
    ("BSI", "451"),
    ("BTN", "200"),
    ("CIMB", "022"),
    ("DANAMON", "011"),
    ("PERMATA", "013"),
    ("MAYBANK", "016"),
    ("MEGA", "426"),
    ("OCBC", "028"),
    ("PANIN", "019"),
    ("UOB", "023"),
    ("HSBC", "087"),
    ("STANDARD CHARTERED", "050"),
    ("CITIBANK", "031"),
    ("BANK DKI", "111"),
    ("BANK DIY", "112"),
    ("BANK JATENG", "113"),
    ("BANK JATIM", "114"),
    ("BANK JAMBI", "115"),
    ("BANK ACEH", "116"),
    ("BANK SUMUT", "117"),
    ("BANK RIAU", "119"),
    ("BANK SUMSEL", "120"),
    ("BANK LAMPUNG", "121"),
    ("BANK KALSEL", "122"),
    ("BANK KALBAR", "123"),
    ("BANK KALTIM", "124"),
    ("BANK KALTENG", "125"),
    ("BANK SULSEL", "126"),
    ("BANK SULUT", "127"),
    ("BANK NTB", "128"),
    ("BANK NTT", "129"),
    ("BANK SULTRA", "130"),
    ("BANK MALUKU", "131"),
    ("BANK SULTENG", "132"),
    ("BANK BENGKULU", "133"),
    ("BANK GORONTALO", "134"),
    ("BANK SULBAR", "135"),
    ("BANK MALUT", "136"),
    ("BANK BANTEN", "137"),
)


def bank_code(bank_name: str) -> str:
    """Three-digit clearing code for a bank name, '000' when unknown."""
    normalized = (bank_name or "").upper()
    for key, code in BANK_CODES:
        if key in normalized:
            return code
    return "000"


def crc16_ccitt(data: str) -> str:
    """CRC16-CCITT (poly 0x1021, init 0xFFFF) as 4 uppercase hex digits."""
    crc = 0xFFFF
    for byte in data.encode("utf-8"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def _tlv(tag: str, value: str) -> str:
    return f"{tag}{len(value):02d}{value}"


def build_qris_payload(
    account: TreasurerAccount,
    amount: int,
    reference: Optional[str] = None
) -> str:
    """
    EMV QR string for a dynamic payment of `amount` rupiah to `account`.
    Alternative to build_transfer_info for scanners that need a full EMV payload.
    """
    reference = reference or f"REF{str(int(time.time() * 1000))[-10:]}"

    payload = "".join([
        _tlv("00", "01"),
        _tlv("01", "12"),
        _tlv("26", f"{bank_code(account.bank_name)}{account.account_number}"),
        _tlv("52", "0000"),
        _tlv("53", "360"),
        _tlv("54", str(amount)),
        _tlv("58", "ID"),
        _tlv("59", MERCHANT_NAME[:25]),
        _tlv("60", MERCHANT_CITY[:15]),
        _tlv("62", _tlv("05", reference[:25])),
    ])
    payload += "6304"
    return payload + crc16_ccitt(payload)


def build_transfer_info(account: TreasurerAccount, amount: int) -> str:
    """JSON account description encoded in treasurer QR codes."""
    return json.dumps({
        "type": "BANK_TRANSFER_INFO",
        "bank": account.bank_name,
        "account": account.account_number,
        "name": account.account_name,
        "amount": amount,
        "currency": "IDR",
        "message": f"Transfer ke {account.account_name} - {account.bank_name}",
        "timestamp": datetime.utcnow().isoformat() + "Z",
    })
