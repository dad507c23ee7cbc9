"""Sadad Qatar Web Checkout.

Requests and callbacks are authenticated by a ``checksumhash``: the JSON of
``{"postData": <fields>, "secretKey": <key>}`` is salted, SHA-256 hashed, and
the hash+salt is AES-128-CBC encrypted with ``secret_key + merchant_id``.
There is no status API, so the checksum-verified callback is the gateway's
authoritative answer.
"""
import base64
import hashlib
import json
import secrets
from datetime import datetime
from decimal import Decimal, InvalidOperation

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from gateways.base import GatewayOrder, GatewayResult, PaymentGateway
from models.status import AttemptStatus, PaymentMethod
from services.errors import GatewayError
from services.pricing import round2

IV = b"@@@@&&&&####$$$$"
SALT_CHARS = "AbcDE123IJKLMN67QRSTUVWXYZaBCdefghijklmn123opq45rs67tuv89wxyz0FGH45OP89"
SUCCESS_CODE = "1"
PENDING_CODES = {"400", "402"}
CALLBACK_FIELDS = ("ORDERID", "RESPCODE", "RESPMSG", "TXNAMOUNT", "transaction_number")


def _key(key: str) -> bytes:
    raw = key.encode("utf-8")[:16]
    return raw.ljust(16, b"\0")


def _encrypt(text: str, key: str) -> str:
    padder = padding.PKCS7(128).padder()
    data = padder.update(text.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(_key(key)), modes.CBC(IV)).encryptor()
    return base64.b64encode(encryptor.update(data) + encryptor.finalize()).decode("ascii")


def _decrypt(text: str, key: str) -> str:
    decryptor = Cipher(algorithms.AES(_key(key)), modes.CBC(IV)).decryptor()
    data = decryptor.update(base64.b64decode(text)) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    return (unpadder.update(data) + unpadder.finalize()).decode("utf-8")


def _digest(data: dict, salt: str) -> str:
    # compact separators match the JSON the gateway hashes on its side
    encoded = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(f"{encoded}|{salt}".encode("utf-8")).hexdigest() + salt


def generate_checksum(data: dict, secret_key: str, merchant_id: str) -> str:
    salt = "".join(secrets.choice(SALT_CHARS) for _ in range(4))
    return _encrypt(_digest(data, salt), secret_key + merchant_id)


def verify_checksum(data: dict, secret_key: str, merchant_id: str, checksum: str) -> bool:
    try:
        expected = _decrypt(checksum, secret_key + merchant_id)
    except (ValueError, UnicodeDecodeError):
        return False
    return secrets.compare_digest(_digest(data, expected[-4:]), expected)


class SadadGateway(PaymentGateway):
    name = PaymentMethod.SADAD.value

    @property
    def merchant_id(self):
        return self.config.get("SADAD_MERCHANT_ID") or ""

    @property
    def secret_key(self):
        return self.config.get("SADAD_SECRET_KEY") or ""

    def create_order(self, booking, payment) -> GatewayOrder:
        if not self.merchant_id or not self.secret_key:
            raise GatewayError("Sadad credentials not configured", gateway=self.name)

        guest = booking.guest_user
        order_id = f"{booking.id}-{payment.id}"
        amount = f"{round2(payment.amount):.2f}"
        post_data = {
            "merchant_id": self.merchant_id,
            "ORDER_ID": order_id,
            "WEBSITE": self.config.get("SADAD_WEBSITE"),
            "TXN_AMOUNT": amount,
            "CUST_ID": guest.email if guest else str(booking.guest_id),
            "EMAIL": guest.email if guest else "",
            "MOBILE_NO": (guest.phone_number if guest else None) or "",
            "VERSION": "2.1",
            "CALLBACK_URL": self.config.get("SADAD_CALLBACK_URL"),
            "txnDate": datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S"),
            "productdetail": [{
                "order_id": order_id,
                "quantity": "1",
                "amount": amount,
                "itemname": f"Booking {booking.id}",
            }],
        }
        checksum = generate_checksum(
            {"postData": post_data, "secretKey": self.secret_key}, self.secret_key, self.merchant_id
        )

        fields = {k: v for k, v in post_data.items() if k != "productdetail"}
        fields["checksumhash"] = checksum
        for i, item in enumerate(post_data["productdetail"]):
            for k, v in item.items():
                fields[f"productdetail[{i}][{k}]"] = v

        return GatewayOrder(
            reference=order_id,
            payload={"action": self.config.get("SADAD_CHECKOUT_URL"), "fields": fields},
        )

    def verify_callback(self, form) -> dict:
        """Return the callback fields if the checksum is authentic, else raise."""
        data = {name: form.get(name) or "" for name in CALLBACK_FIELDS}
        checksum = form.get("checksumhash") or ""
        if not checksum or not verify_checksum(
            {"postData": data, "secretKey": self.secret_key}, self.secret_key, self.merchant_id, checksum
        ):
            raise GatewayError("Invalid checksumhash", gateway=self.name)
        return data

    def capture_or_sync(self, payment, payload=None) -> GatewayResult:
        if not payload:
            return GatewayResult(status=AttemptStatus.PENDING, message="Waiting for Sadad callback")

        data = self.verify_callback(payload)
        if data["ORDERID"] != payment.external_ref:
            raise GatewayError("Sadad callback does not match this payment", gateway=self.name)

        code = data["RESPCODE"]
        if code == SUCCESS_CODE:
            try:
                amount = round2(Decimal(data["TXNAMOUNT"]))
            except InvalidOperation:
                raise GatewayError("Sadad callback amount is not a number", gateway=self.name)
            return GatewayResult(
                status=AttemptStatus.PAID,
                amount=amount,
                currency=payment.currency,
                transaction_id=data["transaction_number"],
            )
        if code in PENDING_CODES:
            return GatewayResult(status=AttemptStatus.PENDING, message="Transaction pending")
        return GatewayResult(status=AttemptStatus.FAILED, message=data["RESPMSG"] or "Transaction failed")
