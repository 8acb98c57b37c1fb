"""
Tests for QR payload helpers: CRC, bank codes, EMV string and transfer info.
"""
import json

from db import TreasurerAccount
from services.qris import bank_code, crc16_ccitt, build_qris_payload, build_transfer_info


def _account(**overrides) -> TreasurerAccount:
    data = dict(bank_name="Bank BCA", account_name="Bendahara Vibra", account_number="1234567890")
    data.update(overrides)
    return TreasurerAccount(**data)


def _parse_tlv(payload: str) -> dict:
    fields, pos = {}, 0
    while pos < len(payload):
        tag, length = payload[pos:pos + 2], int(payload[pos + 2:pos + 4])
        fields[tag] = payload[pos + 4:pos + 4 + length]
        pos += 4 + length
    return fields


class TestCrc16:
    """CRC16-CCITT (0x1021, init 0xFFFF)"""

    def test_check_value(self):
        assert crc16_ccitt("123456789") == "29B1"

    def test_empty_string_is_initial_value(self):
        assert crc16_ccitt("") == "FFFF"

    def test_always_four_uppercase_hex_digits(self):
        for data in ("a", "000201", "Vibra Kas"):
            crc = crc16_ccitt(data)
            assert len(crc) == 4
            assert crc == crc.upper()
            int(crc, 16)


class TestBankCode:

    def test_known_banks(self):
        assert bank_code("BCA") == "014"
        assert bank_code("Bank Mandiri") == "008"
        assert bank_code("bni") == "009"
        assert bank_code("BRI Syariah") == "002"
        assert bank_code("CIMB Niaga") == "022"

    def test_unknown_bank_defaults(self):
        assert bank_code("Bank Antah Berantah") == "000"
        assert bank_code("") == "000"


class TestQrisPayload:

    def test_payload_fields(self):
        payload = build_qris_payload(_account(), 25000, reference="REF123")
        fields = _parse_tlv(payload[:-8])

        assert fields["00"] == "01"
        assert fields["01"] == "12"
        assert fields["26"] == "0141234567890"
        assert fields["52"] == "0000"
        assert fields["53"] == "360"
        assert fields["54"] == "25000"
        assert fields["58"] == "ID"
        assert fields["59"] == "Vibra Kas"
        assert fields["62"] == "0506REF123"

    def test_crc_trailer_covers_payload(self):
        payload = build_qris_payload(_account(), 10000, reference="REF1")
        body, crc = payload[:-4], payload[-4:]
        assert body.endswith("6304")
        assert crc == crc16_ccitt(body)

    def test_generated_reference(self):
        fields = _parse_tlv(build_qris_payload(_account(), 10000)[:-8])
        assert fields["62"].startswith("05")
        assert "REF" in fields["62"]


class TestTransferInfo:

    def test_transfer_info_json(self):
        info = json.loads(build_transfer_info(_account(bank_name="BNI"), 30150))
        assert info["type"] == "BANK_TRANSFER_INFO"
        assert info["bank"] == "BNI"
        assert info["account"] == "1234567890"
        assert info["name"] == "Bendahara Vibra"
        assert info["amount"] == 30150
        assert info["currency"] == "IDR"
        assert info["timestamp"].endswith("Z")
