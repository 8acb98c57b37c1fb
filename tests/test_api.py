"""
HTTP tests for the JSON API and the server-rendered pages, through the Flask test client.
"""
import hashlib
import io

from config import config
from conftest import login, make_user, run
from db import EmailVerificationRepository, UserRepository


def _create_manual(client, amount="20000"):
    response = client.post(
        "/api/manual-transfer/create",
        data={"amount": amount, "notes": "iuran", "proof": (io.BytesIO(b"png"), "bukti.png")},
        content_type="multipart/form-data"
    )
    assert response.status_code == 200, response.get_json()
    return response.get_json()["transactionId"]


class TestHealthAndErrors:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy", "service": "vibra-kas"}

    def test_unauthenticated_api_is_401_json(self, client):
        response = client.get("/api/me")
        assert response.status_code == 401
        assert response.get_json() == {"message": "Unauthorized"}

    def test_unknown_route_is_404(self, client):
        assert client.get("/api/does-not-exist").status_code == 404

    def test_validation_error_is_400(self, client, member):
        login(client, member.email)
        response = client.post("/api/payment/create", json={"amount": 500, "method": "va"})
        assert response.status_code == 400
        assert response.get_json() == {"message": "Minimum setor saldo adalah Rp 10.000"}


class TestAuthApi:

    def test_login_me_logout(self, client, member):
        data = login(client, "Anggota@Example.com").get_json()
        assert data["message"] == "Login berhasil"
        assert data["user"]["balance"] == 50000

        me = client.get("/api/me").get_json()["user"]
        assert me["email"] == "anggota@example.com"
        assert "password_hash" not in me

        client.post("/api/auth/logout")
        assert client.get("/api/me").status_code == 401

    def test_bad_login(self, client, member):
        response = client.post("/api/auth/login", json={"email": member.email, "password": "salah123"})
        assert response.status_code == 401
        assert response.get_json()["message"] == "Email atau password salah"

    def test_register_flow_logs_in(self, client, admin):
        response = client.post("/api/auth/register/request-otp", json={
            "name": "Anggota Baru", "email": "baru@example.com", "password": "rahasia1"
        })
        verification_id = response.get_json()["verificationId"]

        otp = run(EmailVerificationRepository.get_by_id(verification_id)).otp_code

        response = client.post("/api/auth/register/verify-otp", json={
            "verificationId": verification_id, "otpCode": otp
        })
        assert response.status_code == 200
        assert response.get_json()["message"] == "Registrasi berhasil! Email Anda telah diverifikasi."
        assert client.get("/api/me").get_json()["user"]["role"] == "anggota"


class TestRoles:

    def test_member_forbidden_on_staff_endpoints(self, client, member):
        login(client, member.email)
        for method, path in (
            ("get", "/api/admin/users"),
            ("get", "/api/audit-logs"),
            ("post", "/api/manual-transfer/confirm"),
            ("post", "/api/transactions/adjust"),
            ("get", "/api/admin/reset-data"),
        ):
            response = getattr(client, method)(path)
            assert response.status_code == 403, path
            assert response.get_json() == {"message": "Forbidden"}

    def test_bendahara_cannot_reset_or_delete_users(self, client, bendahara, member):
        login(client, bendahara.email)
        assert client.get("/api/admin/users").status_code == 200
        assert client.get("/api/admin/reset-data").status_code == 403
        response = client.post("/api/admin/users/delete", json={"userId": member.id, "reason": "x" * 12})
        assert response.status_code == 403


class TestTopUpFlow:

    def test_manual_transfer_approve(self, client, app, member, bendahara):
        login(client, member.email)
        txn_id = _create_manual(client)

        listing = client.get("/api/transactions").get_json()
        assert listing["count"] == 1
        assert listing["transactions"][0]["status"] == "pending"

        staff = app.test_client()
        login(staff, bendahara.email)
        response = staff.post("/api/manual-transfer/confirm", json={"transactionId": txn_id, "action": "approve"})
        assert response.get_json() == {"message": "Transaksi berhasil disetujui"}

        again = staff.post("/api/manual-transfer/confirm", json={"transactionId": txn_id, "action": "approve"})
        assert again.status_code == 400
        assert client.get("/api/me").get_json()["user"]["balance"] == 70000

    def test_proof_is_required(self, client, member):
        login(client, member.email)
        response = client.post(
            "/api/manual-transfer/create", data={"amount": "20000"}, content_type="multipart/form-data"
        )
        assert response.status_code == 400
        assert response.get_json()["message"] == "Bukti transfer wajib diupload"

    def test_member_cannot_see_others_payment(self, client, app, member, other_member):
        login(client, member.email)
        txn_id = client.post("/api/payment/create", json={"amount": 10000, "method": "va"}).get_json()["transactionId"]

        other = app.test_client()
        login(other, other_member.email)
        assert other.get(f"/api/payment/status/{txn_id}").status_code == 403
        assert client.get(f"/api/payment/status/{txn_id}").get_json()["status"] == "pending"

    def test_webhook_credits_once(self, client, member):
        login(client, member.email)
        txn_id = client.post("/api/payment/create", json={"amount": 10000, "method": "va"}).get_json()["transactionId"]
        client.post("/api/auth/logout")

        first = client.post("/api/webhook/payment", json={"merchant_ref": txn_id, "status": "PAID"})
        second = client.post("/api/webhook/payment", json={"merchant_ref": txn_id, "status": "PAID"})

        assert first.get_json()["status"] == "success"
        assert second.get_json()["message"] == "Already processed"
        assert run(UserRepository.get_by_id(member.id)).balance == 60000

    def test_webhook_signature_header(self, client, member, monkeypatch):
        login(client, member.email)
        txn_id = client.post("/api/payment/create", json={"amount": 10000, "method": "va"}).get_json()["transactionId"]
        monkeypatch.setattr(config, "PAYMENT_API_KEY", "live-key")
        payload = {"merchant_ref": txn_id, "status": "PAID"}

        rejected = client.post("/api/webhook/payment", json=payload, headers={"X-Callback-Signature": "nope"})
        assert rejected.status_code == 401

        signature = hashlib.sha256(f"{txn_id}PAIDprivate-key".encode()).hexdigest()
        accepted = client.post("/api/webhook/payment", json=payload, headers={"X-Callback-Signature": signature})
        assert accepted.status_code == 200


class TestStaffApi:

    def test_adjust_and_delete(self, client, admin, member):
        login(client, admin.email)
        adjusted = client.post("/api/transactions/adjust", json={
            "userId": member.id, "amount": 15000, "reason": "Koreksi iuran bulan lalu"
        }).get_json()
        assert adjusted["newBalance"] == 65000

        txn_id = adjusted["transaction"]["id"]
        deleted = client.post("/api/transactions/delete", json={
            "transactionId": txn_id, "reason": "Penyesuaian dobel"
        }).get_json()
        assert deleted["message"] == "Transaksi berhasil dihapus"
        assert deleted["newBalance"] == 50000

        assert len(client.get("/api/audit-logs").get_json()["logs"]) == 4
        assert len(client.get("/api/audit-logs?limit=3").get_json()["logs"]) == 3

    def test_treasurer_accounts(self, client, bendahara, member):
        login(client, bendahara.email)
        saved = client.post("/api/treasurer/update", data={
            "bankName": "BRI", "accountName": "Kas Vibra", "accountNumber": "0001", "isActive": "false"
        }).get_json()["data"]

        assert client.get("/api/treasurer/get").get_json()["data"] == []
        everything = client.get("/api/treasurer/get?all=true").get_json()["data"]
        assert [a["id"] for a in everything] == [saved["id"]]

        response = client.post("/api/treasurer/delete", json={"id": saved["id"]})
        assert response.get_json()["message"] == "Rekening berhasil dihapus"

    def test_cleanup_expired_with_internal_token(self, client, member, monkeypatch):
        monkeypatch.setattr(config, "INTERNAL_API_TOKEN", "cron-secret")
        login(client, member.email)
        _create_manual(client)
        client.post("/api/auth/logout")

        assert client.post("/api/payment/cleanup-expired").status_code == 401
        assert client.post(
            "/api/payment/cleanup-expired", headers={"X-Internal-Request": "wrong"}
        ).status_code == 401

        preview = client.get("/api/payment/cleanup-expired", headers={"X-Internal-Request": "cron-secret"})
        assert preview.get_json()["totalPending"] == 1
        assert preview.get_json()["expiredCount"] == 0

        swept = client.post("/api/payment/cleanup-expired", headers={"X-Internal-Request": "cron-secret"})
        assert swept.get_json()["success"] is True
        assert swept.get_json()["expiredCount"] == 0


class TestReportsApi:

    def test_export_csv(self, client, member):
        login(client, member.email)
        response = client.get("/api/reports/export?startDate=2026-01-01&endDate=2026-01-31")

        assert response.status_code == 200
        assert response.mimetype == "text/csv"
        assert "laporan-2026-01-01-2026-01-31.csv" in response.headers["Content-Disposition"]
        assert response.get_data(as_text=True).splitlines()[0] == "Tanggal,Nama,Tipe,Metode,Jumlah,Status"

    def test_bad_dates(self, client, member):
        login(client, member.email)
        response = client.get("/api/reports?startDate=2026-02-01&endDate=2026-01-01")
        assert response.status_code == 400

    def test_dashboard(self, client, member):
        login(client, member.email)
        data = client.get("/api/dashboard").get_json()
        assert data["balance"] == 50000
        assert len(data["chart"]) == 30


class TestPages:

    def test_login_page(self, client, database):
        response = client.get("/login")
        assert response.status_code == 200
        assert "Masuk ke Vibra Kas" in response.get_data(as_text=True)

    def test_protected_page_redirects(self, client, database):
        response = client.get("/dashboard")
        assert response.status_code == 302
        assert "/login" in response.headers["Location"]

    def test_member_pages(self, client, member):
        login(client, member.email)
        _create_manual(client)
        for path in ("/dashboard", "/transactions", "/topup", "/reports", "/top-contributors", "/settings"):
            response = client.get(path)
            assert response.status_code == 200, path
        assert "Rp 50.000" in client.get("/dashboard").get_data(as_text=True)

    def test_member_redirected_from_staff_pages(self, client, member):
        login(client, member.email)
        response = client.get("/users")
        assert response.status_code == 302
        assert "/dashboard" in response.headers["Location"]

    def test_staff_pages(self, client, admin, member, treasurer_account):
        login(client, admin.email)
        for path in ("/approvals", "/adjustment", "/audit-log", "/treasurer", "/users"):
            response = client.get(path)
            assert response.status_code == 200, path

    def test_names_are_escaped(self, client, admin):
        make_user("<script>alert(1)</script>", "xss@example.com")
        login(client, admin.email)
        body = client.get("/users").get_data(as_text=True)
        assert "<script>alert(1)</script>" not in body
        assert "&lt;script&gt;" in body
