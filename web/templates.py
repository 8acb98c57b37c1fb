"""
Page templates. Every page extends "base"; forms post to /api with fetch.
"""

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="id">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{ title }} - Vibra Kas</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <style>
        .flash { animation: fadeOut 5s forwards; }
        @keyframes fadeOut { 0% { opacity: 1; } 80% { opacity: 1; } 100% { opacity: 0; } }
    </style>
    <script>
        async function api(path, body, options) {
            options = options || {};
            const init = { method: options.method || 'POST', headers: {} };
            if (body instanceof FormData) {
                init.body = body;
            } else if (body !== undefined) {
                init.headers['Content-Type'] = 'application/json';
                init.body = JSON.stringify(body);
            }
            const res = await fetch('/api' + path, init);
            const data = await res.json().catch(() => ({}));
            if (!res.ok) throw new Error(data.message || 'Terjadi kesalahan server');
            return data;
        }
        function showMessage(id, text, ok) {
            const el = document.getElementById(id);
            el.textContent = text;
            el.className = 'p-3 rounded mb-4 ' + (ok ? 'bg-green-100 text-green-700' : 'bg-red-100 text-red-700');
        }
    </script>
</head>
<body class="bg-gray-100 min-h-screen">
    {% if user %}
    <nav class="bg-emerald-800 text-white p-4">
        <div class="container mx-auto flex flex-wrap justify-between items-center gap-2">
            <a href="{{ url_for('pages.dashboard') }}" class="text-xl font-bold">Vibra Kas</a>
            <div class="flex flex-wrap gap-4 text-sm">
                <a href="{{ url_for('pages.dashboard') }}" class="hover:text-gray-300">Dashboard</a>
                <a href="{{ url_for('pages.transactions') }}" class="hover:text-gray-300">Transaksi</a>
                <a href="{{ url_for('pages.topup') }}" class="hover:text-gray-300">Setor Saldo</a>
                <a href="{{ url_for('pages.reports') }}" class="hover:text-gray-300">Laporan</a>
                <a href="{{ url_for('pages.top_contributors') }}" class="hover:text-gray-300">Top Kontributor</a>
                {% if user.is_staff %}
                <a href="{{ url_for('pages.approvals') }}" class="hover:text-gray-300">Persetujuan</a>
                <a href="{{ url_for('pages.adjustment') }}" class="hover:text-gray-300">Penyesuaian</a>
                <a href="{{ url_for('pages.treasurer') }}" class="hover:text-gray-300">Rekening</a>
                <a href="{{ url_for('pages.users') }}" class="hover:text-gray-300">Pengguna</a>
                <a href="{{ url_for('pages.audit_log') }}" class="hover:text-gray-300">Audit Log</a>
                {% endif %}
                <a href="{{ url_for('pages.settings') }}" class="hover:text-gray-300">Pengaturan</a>
                <a href="{{ url_for('pages.logout') }}" class="text-red-300 hover:text-red-200">Logout</a>
            </div>
        </div>
    </nav>
    {% endif %}

    <main class="container mx-auto p-4">
        {% with messages = get_flashed_messages(with_categories=true) %}
        {% if messages %}
        <div class="mb-4">
            {% for category, message in messages %}
            <div class="flash p-4 rounded {% if category == 'error' %}bg-red-100 text-red-700{% elif category == 'success' %}bg-green-100 text-green-700{% else %}bg-blue-100 text-blue-700{% endif %}">
                {{ message }}
            </div>
            {% endfor %}
        </div>
        {% endif %}
        {% endwith %}
        <div id="message"></div>

        {% block content %}{% endblock %}
    </main>
</body>
</html>
"""

MACROS_TEMPLATE = """
{% macro status_badge(status) -%}
<span class="px-2 py-1 rounded text-xs
    {% if status == 'success' %}bg-green-100 text-green-800
    {% elif status == 'pending' %}bg-yellow-100 text-yellow-800
    {% else %}bg-red-100 text-red-800{% endif %}">{{ status }}</span>
{%- endmacro %}
"""

LOGIN_TEMPLATE = """
{% extends "base" %}
{% block content %}
<div class="max-w-md mx-auto mt-20">
    <div class="bg-white p-8 rounded-lg shadow-md">
        <h1 class="text-2xl font-bold mb-6 text-center">Masuk ke Vibra Kas</h1>
        <form id="login-form">
            <div class="mb-4">
                <label class="block text-gray-700 mb-2">Email</label>
                <input type="email" name="email" required class="w-full p-2 border rounded">
            </div>
            <div class="mb-6">
                <label class="block text-gray-700 mb-2">Password</label>
                <input type="password" name="password" required class="w-full p-2 border rounded">
            </div>
            <button type="submit" class="w-full bg-emerald-600 text-white p-2 rounded hover:bg-emerald-700">Login</button>
        </form>
        <p class="text-center text-sm mt-4">Belum punya akun? <a href="{{ url_for('pages.register') }}" class="text-emerald-700 underline">Daftar</a></p>
    </div>
</div>
<script>
document.getElementById('login-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    const form = new FormData(e.target);
    try {
        await api('/auth/login', { email: form.get('email'), password: form.get('password') });
        window.location = {{ next_url | tojson }};
    } catch (err) { showMessage('message', err.message, false); }
});
</script>
{% endblock %}
"""

REGISTER_TEMPLATE = """
{% extends "base" %}
{% block content %}
<div class="max-w-md mx-auto mt-16">
    <div class="bg-white p-8 rounded-lg shadow-md">
        <h1 class="text-2xl font-bold mb-6 text-center">Daftar Akun</h1>
        <form id="register-form">
            <input type="text" name="name" placeholder="Nama lengkap" required class="w-full p-2 border rounded mb-3">
            <input type="email" name="email" placeholder="Email" required class="w-full p-2 border rounded mb-3">
            <input type="password" name="password" placeholder="Password (min. 6 karakter)" required class="w-full p-2 border rounded mb-4">
            <button type="submit" class="w-full bg-emerald-600 text-white p-2 rounded">Kirim Kode OTP</button>
        </form>
        <p class="text-center text-sm mt-4">Sudah punya akun? <a href="{{ url_for('pages.login') }}" class="text-emerald-700 underline">Login</a></p>
    </div>
</div>
<script>
document.getElementById('register-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    const form = new FormData(e.target);
    try {
        const data = await api('/auth/register/request-otp', {
            name: form.get('name'), email: form.get('email'), password: form.get('password')
        });
        window.location = '{{ url_for("pages.verify") }}?id=' + encodeURIComponent(data.verificationId)
            + '&email=' + encodeURIComponent(form.get('email'));
    } catch (err) { showMessage('message', err.message, false); }
});
</script>
{% endblock %}
"""

VERIFY_TEMPLATE = """
{% extends "base" %}
{% block content %}
<div class="max-w-md mx-auto mt-16">
    <div class="bg-white p-8 rounded-lg shadow-md">
        <h1 class="text-2xl font-bold mb-2 text-center">Verifikasi Email</h1>
        <p class="text-center text-gray-600 mb-6">Masukkan kode 6 digit yang dikirim ke {{ email }}</p>
        <form id="verify-form">
            <input type="text" name="otpCode" maxlength="6" required class="w-full p-2 border rounded mb-4 text-center tracking-widest text-2xl">
            <button type="submit" class="w-full bg-emerald-600 text-white p-2 rounded">Verifikasi</button>
        </form>
    </div>
</div>
<script>
document.getElementById('verify-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    const form = new FormData(e.target);
    try {
        await api('/auth/register/verify-otp', { verificationId: {{ verification_id | tojson }}, otpCode: form.get('otpCode') });
        window.location = '{{ url_for("pages.dashboard") }}';
    } catch (err) { showMessage('message', err.message, false); }
});
</script>
{% endblock %}
"""

DASHBOARD_TEMPLATE = """
{% extends "base" %}
{% block content %}
{% from "macros" import status_badge %}
<h1 class="text-3xl font-bold mb-6">Halo, {{ user.name }}</h1>

<div class="grid grid-cols-1 md:grid-cols-2 lg:grid-cols-4 gap-4 mb-8">
    <div class="bg-white p-6 rounded-lg shadow">
        <h3 class="text-gray-500 text-sm">{% if user.is_staff %}Total Saldo Kas{% else %}Saldo Anda{% endif %}</h3>
        <p class="text-3xl font-bold">{{ summary.balance | rupiah }}</p>
    </div>
    <div class="bg-white p-6 rounded-lg shadow">
        <h3 class="text-gray-500 text-sm">Pemasukan Bulan Ini</h3>
        <p class="text-3xl font-bold text-green-600">{{ summary.monthIncome | rupiah }}</p>
    </div>
    <div class="bg-white p-6 rounded-lg shadow">
        <h3 class="text-gray-500 text-sm">Pengeluaran Bulan Ini</h3>
        <p class="text-3xl font-bold text-red-600">{{ summary.monthExpense | rupiah }}</p>
    </div>
    <div class="bg-white p-6 rounded-lg shadow">
        <h3 class="text-gray-500 text-sm">Jumlah Transaksi</h3>
        <p class="text-3xl font-bold">{{ summary.totalTransactions }}</p>
    </div>
</div>

<div class="grid grid-cols-1 lg:grid-cols-2 gap-6">
    <div class="bg-white p-6 rounded-lg shadow">
        <h2 class="text-xl font-bold mb-4">30 Hari Terakhir</h2>
        <canvas id="chart" height="200"></canvas>
    </div>
    <div class="bg-white p-6 rounded-lg shadow">
        <h2 class="text-xl font-bold mb-4">Transaksi Terbaru</h2>
        <table class="w-full text-sm">
            <tbody>
                {% for txn in summary.recentTransactions %}
                <tr class="border-b">
                    <td class="p-2">{{ txn.created_at[:10] }}</td>
                    <td class="p-2">{{ txn.user_name }}</td>
                    <td class="p-2">{{ txn.method }}</td>
                    <td class="p-2 text-right">{{ txn.amount | rupiah }}</td>
                    <td class="p-2">{{ status_badge(txn.status) }}</td>
                </tr>
                {% else %}
                <tr><td class="p-2 text-gray-500">Belum ada transaksi</td></tr>
                {% endfor %}
            </tbody>
        </table>
    </div>
</div>
<script src="https://cdn.jsdelivr.net/npm/chart.js"></script>
<script>
const chart = {{ summary.chart | tojson }};
new Chart(document.getElementById('chart'), {
    type: 'line',
    data: {
        labels: chart.map(d => d.date.slice(5)),
        datasets: [
            { label: 'Pemasukan', data: chart.map(d => d.income), borderColor: '#059669' },
            { label: 'Pengeluaran', data: chart.map(d => d.expense), borderColor: '#dc2626' }
        ]
    }
});
</script>
{% endblock %}
"""

TRANSACTIONS_TEMPLATE = """
{% extends "base" %}
{% block content %}
{% from "macros" import status_badge %}
<h1 class="text-3xl font-bold mb-6">Transaksi</h1>
{% if expired_count %}
<div class="p-3 rounded mb-4 bg-yellow-100 text-yellow-800">{{ expired_count }} transaksi kedaluwarsa ditandai gagal.</div>
{% endif %}

<div class="mb-4 flex gap-2">
    <a href="?" class="px-4 py-2 rounded {% if not status %}bg-emerald-600 text-white{% else %}bg-gray-200{% endif %}">Semua</a>
    {% for s in ['pending', 'success', 'failed'] %}
    <a href="?status={{ s }}" class="px-4 py-2 rounded {% if status == s %}bg-emerald-600 text-white{% else %}bg-gray-200{% endif %}">{{ s | capitalize }}</a>
    {% endfor %}
</div>

<div class="bg-white rounded-lg shadow overflow-x-auto">
    <table class="w-full text-sm">
        <thead class="bg-gray-50">
            <tr>
                <th class="text-left p-3">Tanggal</th>
                <th class="text-left p-3">Nama</th>
                <th class="text-left p-3">Tipe</th>
                <th class="text-left p-3">Metode</th>
                <th class="text-right p-3">Jumlah</th>
                <th class="text-left p-3">Status</th>
                <th class="p-3"></th>
            </tr>
        </thead>
        <tbody>
            {% for txn in transactions %}
            <tr class="border-b hover:bg-gray-50">
                <td class="p-3">{{ txn.created_at.strftime('%Y-%m-%d %H:%M') }}</td>
                <td class="p-3">{{ txn.user_name }}</td>
                <td class="p-3">{{ 'Masuk' if txn.type.value == 'in' else 'Keluar' }}</td>
                <td class="p-3">{{ txn.method.value }}</td>
                <td class="p-3 text-right">{{ txn.amount | rupiah }}</td>
                <td class="p-3">{{ status_badge(txn.status.value) }}</td>
                <td class="p-3 whitespace-nowrap">
                    <a href="{{ url_for('pages.payment_detail', txn_id=txn.id) }}" class="text-emerald-700 hover:underline">Detail</a>
                    {% if user.is_staff %}
                    <button onclick="deleteTxn({{ txn.id | tojson }})" class="ml-2 text-red-600 hover:underline">Hapus</button>
                    {% endif %}
                </td>
            </tr>
            {% else %}
            <tr><td colspan="7" class="p-3 text-gray-500">Tidak ada transaksi</td></tr>
            {% endfor %}
        </tbody>
    </table>
</div>
<script>
async function deleteTxn(id) {
    const reason = prompt('Alasan penghapusan (minimal 10 karakter):');
    if (!reason) return;
    try {
        await api('/transactions/delete', { transactionId: id, reason: reason });
        window.location.reload();
    } catch (err) { showMessage('message', err.message, false); }
}
</script>
{% endblock %}
"""

TOPUP_TEMPLATE = """
{% extends "base" %}
{% block content %}
<h1 class="text-3xl font-bold mb-6">Setor Saldo</h1>
<div class="grid grid-cols-1 lg:grid-cols-2 gap-6">
    <div class="bg-white p-6 rounded-lg shadow">
        <h2 class="text-xl font-bold mb-4">Transfer Manual</h2>
        <form id="manual-form" enctype="multipart/form-data">
            <label class="block text-gray-700 mb-1">Rekening tujuan</label>
            <select name="treasurerAccountId" class="w-full p-2 border rounded mb-3">
                {% for account in accounts %}
                <option value="{{ account.id }}">{{ account.bank_name }} - {{ account.account_number }} a.n. {{ account.account_name }}</option>
                {% endfor %}
            </select>
            <input type="number" name="amount" min="{{ min_amount }}" placeholder="Jumlah (min. {{ min_amount | rupiah }})" required class="w-full p-2 border rounded mb-3">
            <label class="block text-gray-700 mb-1">Bukti transfer</label>
            <input type="file" name="proof" accept="image/*,application/pdf" required class="w-full mb-3">
            <textarea name="notes" placeholder="Catatan (opsional)" class="w-full p-2 border rounded mb-4"></textarea>
            <button type="submit" class="w-full bg-emerald-600 text-white p-2 rounded">Kirim</button>
        </form>
    </div>
    <div class="bg-white p-6 rounded-lg shadow">
        <h2 class="text-xl font-bold mb-4">QRIS / Virtual Account</h2>
        <form id="gateway-form">
            <select name="method" class="w-full p-2 border rounded mb-3">
                <option value="qris">QRIS</option>
                <option value="va">Virtual Account</option>
            </select>
            <select name="treasurerAccountId" class="w-full p-2 border rounded mb-3">
                <option value="">Payment gateway</option>
                {% for account in accounts if account.qris_image %}
                <option value="{{ account.id }}">QRIS {{ account.bank_name }} a.n. {{ account.account_name }}</option>
                {% endfor %}
            </select>
            <input type="number" name="amount" min="{{ min_amount }}" placeholder="Jumlah" required class="w-full p-2 border rounded mb-4">
            <button type="submit" class="w-full bg-emerald-600 text-white p-2 rounded">Buat Pembayaran</button>
        </form>
    </div>
</div>
<script>
document.getElementById('manual-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    try {
        const data = await api('/manual-transfer/create', new FormData(e.target));
        showMessage('message', data.message, true);
        e.target.reset();
    } catch (err) { showMessage('message', err.message, false); }
});
document.getElementById('gateway-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    const form = new FormData(e.target);
    try {
        const data = await api('/payment/create', {
            method: form.get('method'),
            amount: form.get('amount'),
            treasurerAccountId: form.get('treasurerAccountId') || null
        });
        window.location = '/payment/' + data.transactionId;
    } catch (err) { showMessage('message', err.message, false); }
});
</script>
{% endblock %}
"""

PAYMENT_TEMPLATE = """
{% extends "base" %}
{% block content %}
{% from "macros" import status_badge %}
<div class="max-w-lg mx-auto bg-white p-6 rounded-lg shadow">
    <h1 class="text-2xl font-bold mb-4">Detail Pembayaran</h1>
    <dl class="grid grid-cols-2 gap-2 text-sm mb-4">
        <dt class="text-gray-500">ID</dt><dd class="break-all">{{ txn.id }}</dd>
        <dt class="text-gray-500">Metode</dt><dd>{{ txn.method.value }}</dd>
        <dt class="text-gray-500">Jumlah</dt><dd>{{ txn.amount | rupiah }}</dd>
        <dt class="text-gray-500">Biaya</dt><dd>{{ txn.fee | rupiah }}</dd>
        <dt class="text-gray-500">Total</dt><dd class="font-bold">{{ txn.total_amount | rupiah }}</dd>
        <dt class="text-gray-500">Status</dt><dd id="status">{{ status_badge(txn.status.value) }}</dd>
        {% if txn.va_number %}<dt class="text-gray-500">Nomor VA</dt><dd class="font-mono">{{ txn.va_number }}</dd>{% endif %}
        {% if txn.expired_at %}<dt class="text-gray-500">Batas waktu</dt><dd>{{ txn.expired_at.strftime('%Y-%m-%d %H:%M') }} UTC</dd>{% endif %}
        {% if txn.notes %}<dt class="text-gray-500">Catatan</dt><dd>{{ txn.notes }}</dd>{% endif %}
    </dl>
    {% if txn.qris_code and txn.is_pending %}
    <div id="qr" class="flex justify-center mb-4"></div>
    <script src="https://cdn.jsdelivr.net/npm/qrcodejs@1.0.0/qrcode.min.js"></script>
    <script>new QRCode(document.getElementById('qr'), {{ txn.qris_code | tojson }});</script>
    {% endif %}
    {% if txn.proof_image %}
    <a href="{{ txn.proof_image }}" target="_blank" class="text-emerald-700 underline">Lihat bukti transfer</a>
    {% endif %}
    {% if txn.is_pending and txn.method.value in ('qris', 'va') %}
    <button onclick="checkNow()" class="w-full mt-4 bg-emerald-600 text-white p-2 rounded">Cek Pembayaran</button>
    {% endif %}
</div>
<script>
const txnId = {{ txn.id | tojson }};
async function checkNow() {
    try {
        const data = await api('/payment/check/' + txnId);
        showMessage('message', data.message || data.status, data.status === 'success');
        if (data.updated) setTimeout(() => window.location.reload(), 1000);
    } catch (err) { showMessage('message', err.message, false); }
}
{% if txn.is_pending and txn.method.value in ('qris', 'va') %}
const poll = setInterval(async () => {
    try {
        const data = await api('/payment/status/' + txnId, undefined, { method: 'GET' });
        if (data.status !== 'pending') { clearInterval(poll); window.location.reload(); }
    } catch (err) { clearInterval(poll); }
}, 10000);
{% endif %}
</script>
{% endblock %}
"""

REPORTS_TEMPLATE = """
{% extends "base" %}
{% block content %}
{% from "macros" import status_badge %}
<h1 class="text-3xl font-bold mb-6">Laporan Keuangan</h1>
<form method="GET" class="flex flex-wrap gap-2 mb-6 items-end">
    <div><label class="block text-sm text-gray-600">Dari</label><input type="date" name="startDate" value="{{ report.start.date().isoformat() }}" class="p-2 border rounded"></div>
    <div><label class="block text-sm text-gray-600">Sampai</label><input type="date" name="endDate" value="{{ report.end.date().isoformat() }}" class="p-2 border rounded"></div>
    <button type="submit" class="px-4 py-2 bg-emerald-600 text-white rounded">Tampilkan</button>
    <a href="{{ url_for('api.reports_export', startDate=report.start.date().isoformat(), endDate=report.end.date().isoformat()) }}" class="px-4 py-2 bg-gray-200 rounded">Export CSV</a>
</form>
<div class="grid grid-cols-1 md:grid-cols-3 gap-4 mb-6">
    <div class="bg-white p-6 rounded-lg shadow"><h3 class="text-gray-500 text-sm">Pemasukan</h3><p class="text-2xl font-bold text-green-600">{{ report.total_income | rupiah }}</p></div>
    <div class="bg-white p-6 rounded-lg shadow"><h3 class="text-gray-500 text-sm">Pengeluaran</h3><p class="text-2xl font-bold text-red-600">{{ report.total_expense | rupiah }}</p></div>
    <div class="bg-white p-6 rounded-lg shadow"><h3 class="text-gray-500 text-sm">Selisih</h3><p class="text-2xl font-bold">{{ report.net | rupiah }}</p></div>
</div>
<div class="bg-white rounded-lg shadow overflow-x-auto">
    <table class="w-full text-sm">
        <tbody>
            {% for txn in report.transactions %}
            <tr class="border-b">
                <td class="p-3">{{ txn.created_at.strftime('%Y-%m-%d %H:%M') }}</td>
                <td class="p-3">{{ txn.user_name }}</td>
                <td class="p-3">{{ 'Masuk' if txn.type.value == 'in' else 'Keluar' }}</td>
                <td class="p-3">{{ txn.method.value }}</td>
                <td class="p-3 text-right">{{ txn.amount | rupiah }}</td>
                <td class="p-3">{{ status_badge(txn.status.value) }}</td>
            </tr>
            {% else %}
            <tr><td class="p-3 text-gray-500">Tidak ada transaksi pada periode ini</td></tr>
            {% endfor %}
        </tbody>
    </table>
</div>
{% endblock %}
"""

TOP_CONTRIBUTORS_TEMPLATE = """
{% extends "base" %}
{% block content %}
<h1 class="text-3xl font-bold mb-6">Top Kontributor</h1>
<div class="bg-white rounded-lg shadow">
    <table class="w-full">
        <tbody>
            {% for row in contributors %}
            <tr class="border-b">
                <td class="p-3 font-bold">#{{ loop.index }}</td>
                <td class="p-3">{{ row.name }}</td>
                <td class="p-3 text-gray-500">{{ row.count }} transaksi</td>
                <td class="p-3 text-right font-bold text-green-600">{{ row.total | rupiah }}</td>
            </tr>
            {% else %}
            <tr><td class="p-3 text-gray-500">Belum ada kontribusi</td></tr>
            {% endfor %}
        </tbody>
    </table>
</div>
{% endblock %}
"""

SETTINGS_TEMPLATE = """
{% extends "base" %}
{% block content %}
<div class="max-w-lg mx-auto bg-white p-6 rounded-lg shadow">
    <h1 class="text-2xl font-bold mb-4">Pengaturan Akun</h1>
    <p class="mb-1"><span class="text-gray-500">Nama:</span> {{ user.name }}</p>
    <p class="mb-1"><span class="text-gray-500">Email:</span> <span id="current-email">{{ user.email }}</span></p>
    <p class="mb-6"><span class="text-gray-500">Role:</span> {{ user.role.value }}</p>

    <h2 class="text-lg font-bold mb-2">Ganti Email</h2>
    <button id="request-otp" class="bg-gray-200 px-4 py-2 rounded mb-4">Kirim Kode OTP ke Email Saat Ini</button>
    <form id="change-email-form" class="hidden">
        <input type="text" name="otpCode" maxlength="6" placeholder="Kode OTP" required class="w-full p-2 border rounded mb-3">
        <input type="email" name="newEmail" placeholder="Email baru" required class="w-full p-2 border rounded mb-3">
        <button type="submit" class="w-full bg-emerald-600 text-white p-2 rounded">Simpan Email Baru</button>
    </form>
</div>
<script>
let verificationId = null;
document.getElementById('request-otp').addEventListener('click', async () => {
    try {
        const data = await api('/auth/change-email/request-otp');
        verificationId = data.verificationId;
        document.getElementById('change-email-form').classList.remove('hidden');
        showMessage('message', data.message, true);
    } catch (err) { showMessage('message', err.message, false); }
});
document.getElementById('change-email-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    const form = new FormData(e.target);
    try {
        const data = await api('/auth/change-email/verify-and-update', {
            verificationId: verificationId, otpCode: form.get('otpCode'), newEmail: form.get('newEmail')
        });
        document.getElementById('current-email').textContent = data.email;
        showMessage('message', data.message, true);
        e.target.classList.add('hidden');
    } catch (err) { showMessage('message', err.message, false); }
});
</script>
{% endblock %}
"""

APPROVALS_TEMPLATE = """
{% extends "base" %}
{% block content %}
<h1 class="text-3xl font-bold mb-6">Persetujuan</h1>

{% macro review_table(rows, endpoint) %}
<div class="bg-white rounded-lg shadow overflow-x-auto mb-8">
    <table class="w-full text-sm">
        <tbody>
            {% for txn in rows %}
            <tr class="border-b">
                <td class="p-3">{{ txn.created_at.strftime('%Y-%m-%d %H:%M') }}</td>
                <td class="p-3">{{ txn.user_name }}<br><span class="text-gray-500">{{ txn.user_email }}</span></td>
                <td class="p-3 text-right">{{ txn.amount | rupiah }}</td>
                <td class="p-3">{% if txn.proof_image %}<a href="{{ txn.proof_image }}" target="_blank" class="text-emerald-700 underline">Bukti</a>{% endif %}</td>
                <td class="p-3 whitespace-nowrap">
                    <button onclick="review('{{ endpoint }}', {{ txn.id | tojson }}, 'approve')" class="bg-green-600 text-white px-3 py-1 rounded">Setujui</button>
                    <button onclick="review('{{ endpoint }}', {{ txn.id | tojson }}, 'reject')" class="bg-red-600 text-white px-3 py-1 rounded">Tolak</button>
                </td>
            </tr>
            {% else %}
            <tr><td class="p-3 text-gray-500">Tidak ada yang menunggu</td></tr>
            {% endfor %}
        </tbody>
    </table>
</div>
{% endmacro %}

<h2 class="text-xl font-bold mb-2">Transfer Manual</h2>
{{ review_table(manual, '/manual-transfer/confirm') }}
<h2 class="text-xl font-bold mb-2">QRIS Rekening Bendahara</h2>
{{ review_table(treasurer, '/payment/verify-treasurer') }}
<script>
async function review(endpoint, id, action) {
    if (!confirm(action === 'approve' ? 'Setujui transaksi ini?' : 'Tolak transaksi ini?')) return;
    try {
        const data = await api(endpoint, { transactionId: id, action: action });
        showMessage('message', data.message, true);
        setTimeout(() => window.location.reload(), 800);
    } catch (err) { showMessage('message', err.message, false); }
}
</script>
{% endblock %}
"""

ADJUSTMENT_TEMPLATE = """
{% extends "base" %}
{% block content %}
<div class="max-w-lg mx-auto bg-white p-6 rounded-lg shadow">
    <h1 class="text-2xl font-bold mb-4">Penyesuaian Saldo</h1>
    <form id="adjust-form">
        <select name="userId" required class="w-full p-2 border rounded mb-3">
            {% for member in members %}
            <option value="{{ member.id }}">{{ member.name }} ({{ member.balance | rupiah }})</option>
            {% endfor %}
        </select>
        <input type="number" name="amount" placeholder="Jumlah (negatif untuk mengurangi)" required class="w-full p-2 border rounded mb-3">
        <textarea name="reason" placeholder="Alasan (minimal 10 karakter)" required class="w-full p-2 border rounded mb-4"></textarea>
        <button type="submit" class="w-full bg-emerald-600 text-white p-2 rounded">Simpan</button>
    </form>
</div>
<script>
document.getElementById('adjust-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    const form = new FormData(e.target);
    try {
        const data = await api('/transactions/adjust', {
            userId: form.get('userId'), amount: form.get('amount'), reason: form.get('reason')
        });
        showMessage('message', data.message + ': ' + data.oldBalance + ' -> ' + data.newBalance, true);
        e.target.reset();
    } catch (err) { showMessage('message', err.message, false); }
});
</script>
{% endblock %}
"""

AUDIT_LOG_TEMPLATE = """
{% extends "base" %}
{% block content %}
<h1 class="text-3xl font-bold mb-6">Audit Log</h1>
<div class="bg-white rounded-lg shadow overflow-x-auto">
    <table class="w-full text-sm">
        <thead class="bg-gray-50">
            <tr>
                <th class="text-left p-3">Waktu</th>
                <th class="text-left p-3">Oleh</th>
                <th class="text-left p-3">Aksi</th>
                <th class="text-left p-3">Entitas</th>
                <th class="text-left p-3">Alasan</th>
                <th class="text-left p-3">IP</th>
            </tr>
        </thead>
        <tbody>
            {% for log in logs %}
            <tr class="border-b align-top">
                <td class="p-3 whitespace-nowrap">{{ log.performed_at.strftime('%Y-%m-%d %H:%M:%S') }}</td>
                <td class="p-3">{{ log.performer_name or 'Unknown' }}</td>
                <td class="p-3">{{ log.action.value }}</td>
                <td class="p-3">{{ log.entity_type.value }}<br><span class="text-gray-400 text-xs">{{ log.entity_id }}</span></td>
                <td class="p-3">{{ log.reason or '-' }}</td>
                <td class="p-3">{{ log.ip_address or '-' }}</td>
            </tr>
            {% endfor %}
        </tbody>
    </table>
</div>
{% endblock %}
"""

TREASURER_TEMPLATE = """
{% extends "base" %}
{% block content %}
<h1 class="text-3xl font-bold mb-6">Rekening Bendahara</h1>
<div class="grid grid-cols-1 lg:grid-cols-2 gap-6">
    <div class="bg-white rounded-lg shadow p-6">
        {% for account in accounts %}
        <div class="border-b py-3 flex justify-between items-start">
            <div>
                <p class="font-bold">{{ account.bank_name }} {% if not account.is_active %}<span class="text-xs text-gray-500">(nonaktif)</span>{% endif %}</p>
                <p>{{ account.account_number }} a.n. {{ account.account_name }}</p>
                {% if account.qris_image %}<a href="{{ account.qris_image }}" target="_blank" class="text-emerald-700 underline text-sm">QRIS</a>{% endif %}
            </div>
            <div class="whitespace-nowrap">
                <button onclick='editAccount({{ account.to_dict() | tojson }})' class="text-emerald-700">Edit</button>
                <button onclick="deleteAccount({{ account.id | tojson }})" class="text-red-600 ml-2">Hapus</button>
            </div>
        </div>
        {% else %}
        <p class="text-gray-500">Belum ada rekening</p>
        {% endfor %}
    </div>
    <div class="bg-white rounded-lg shadow p-6">
        <form id="account-form" enctype="multipart/form-data">
            <input type="hidden" name="id">
            <input type="text" name="bankName" placeholder="Nama bank" required class="w-full p-2 border rounded mb-3">
            <input type="text" name="accountName" placeholder="Nama pemilik" required class="w-full p-2 border rounded mb-3">
            <input type="text" name="accountNumber" placeholder="Nomor rekening" required class="w-full p-2 border rounded mb-3">
            <input type="number" name="order" placeholder="Urutan" class="w-full p-2 border rounded mb-3">
            <textarea name="notes" placeholder="Catatan" class="w-full p-2 border rounded mb-3"></textarea>
            <label class="block mb-3"><input type="checkbox" name="isActive" value="true" checked> Aktif</label>
            <label class="block text-gray-700 mb-1">Gambar QRIS</label>
            <input type="file" name="qrisImage" accept="image/*" class="w-full mb-4">
            <button type="submit" class="w-full bg-emerald-600 text-white p-2 rounded">Simpan</button>
        </form>
    </div>
</div>
<script>
function editAccount(account) {
    const form = document.getElementById('account-form');
    form.id.value = account.id;
    form.bankName.value = account.bank_name;
    form.accountName.value = account.account_name;
    form.accountNumber.value = account.account_number;
    form.order.value = account.order;
    form.notes.value = account.notes || '';
    form.isActive.checked = account.is_active;
}
document.getElementById('account-form').addEventListener('submit', async (e) => {
    e.preventDefault();
    const form = new FormData(e.target);
    form.set('isActive', e.target.isActive.checked ? 'true' : 'false');
    try {
        await api('/treasurer/update', form);
        window.location.reload();
    } catch (err) { showMessage('message', err.message, false); }
});
async function deleteAccount(id) {
    if (!confirm('Hapus rekening ini?')) return;
    try {
        await api('/treasurer/delete', { id: id });
        window.location.reload();
    } catch (err) { showMessage('message', err.message, false); }
}
</script>
{% endblock %}
"""

USERS_TEMPLATE = """
{% extends "base" %}
{% block content %}
<h1 class="text-3xl font-bold mb-6">Pengguna</h1>
<div class="bg-white rounded-lg shadow overflow-x-auto mb-8">
    <table class="w-full text-sm">
        <thead class="bg-gray-50">
            <tr>
                <th class="text-left p-3">Nama</th>
                <th class="text-left p-3">Email</th>
                <th class="text-right p-3">Saldo</th>
                <th class="text-left p-3">Role</th>
                <th class="p-3"></th>
            </tr>
        </thead>
        <tbody>
            {% for member in members %}
            <tr class="border-b">
                <td class="p-3">{{ member.name }}</td>
                <td class="p-3">{{ member.email }}</td>
                <td class="p-3 text-right">{{ member.balance | rupiah }}</td>
                <td class="p-3">
                    <select onchange="updateRole({{ member.id | tojson }}, this.value)" class="border rounded p-1">
                        {% for role in roles %}
                        <option value="{{ role }}" {% if member.role.value == role %}selected{% endif %}>{{ role }}</option>
                        {% endfor %}
                    </select>
                </td>
                <td class="p-3">
                    {% if user.role.value == 'admin' and member.id != user.id %}
                    <button onclick="deleteUser({{ member.id | tojson }})" class="text-red-600">Hapus</button>
                    {% endif %}
                </td>
            </tr>
            {% endfor %}
        </tbody>
    </table>
</div>

{% if user.role.value == 'admin' %}
<div class="bg-white rounded-lg shadow p-6 border-2 border-red-300 max-w-lg">
    <h2 class="text-xl font-bold text-red-700 mb-2">Reset Semua Data</h2>
    <p class="text-sm text-gray-600 mb-4">Menghapus semua transaksi dan audit log serta mengosongkan saldo. Backup dibuat otomatis.</p>
    <form id="reset-form">
        <input type="text" name="confirmText" placeholder="Ketik: {{ reset_text }}" required class="w-full p-2 border rounded mb-3">
        <input type="password" name="adminPassword" placeholder="Password admin" required class="w-full p-2 border rounded mb-3">
        <textarea name="reason" placeholder="Alasan (minimal 20 karakter)" required class="w-full p-2 border rounded mb-4"></textarea>
        <button type="submit" class="w-full bg-red-600 text-white p-2 rounded">Reset Data</button>
    </form>
</div>
{% endif %}
<script>
async function updateRole(userId, role) {
    try {
        const data = await api('/admin/users/update-role', { userId: userId, role: role });
        showMessage('message', data.message, true);
    } catch (err) { showMessage('message', err.message, false); }
}
async function deleteUser(userId) {
    const reason = prompt('Alasan penghapusan (minimal 10 karakter):');
    if (!reason) return;
    try {
        await api('/admin/users/delete', { userId: userId, reason: reason });
        window.location.reload();
    } catch (err) { showMessage('message', err.message, false); }
}
const resetForm = document.getElementById('reset-form');
if (resetForm) resetForm.addEventListener('submit', async (e) => {
    e.preventDefault();
    const form = new FormData(e.target);
    try {
        const data = await api('/admin/reset-data', {
            confirmText: form.get('confirmText'),
            adminPassword: form.get('adminPassword'),
            reason: form.get('reason')
        });
        showMessage('message', data.message + ' (backup: ' + data.summary.backupPath + ')', true);
        e.target.reset();
    } catch (err) { showMessage('message', err.message, false); }
});
</script>
{% endblock %}
"""

TEMPLATES = {
    "base": BASE_TEMPLATE,
    "macros": MACROS_TEMPLATE,
    "login": LOGIN_TEMPLATE,
    "register": REGISTER_TEMPLATE,
    "verify": VERIFY_TEMPLATE,
    "dashboard": DASHBOARD_TEMPLATE,
    "transactions": TRANSACTIONS_TEMPLATE,
    "topup": TOPUP_TEMPLATE,
    "payment": PAYMENT_TEMPLATE,
    "reports": REPORTS_TEMPLATE,
    "top_contributors": TOP_CONTRIBUTORS_TEMPLATE,
    "settings": SETTINGS_TEMPLATE,
    "approvals": APPROVALS_TEMPLATE,
    "adjustment": ADJUSTMENT_TEMPLATE,
    "audit_log": AUDIT_LOG_TEMPLATE,
    "treasurer": TREASURER_TEMPLATE,
    "users": USERS_TEMPLATE,
}
