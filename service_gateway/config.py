# service_gateway/config.py

import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

class Config:
    # URL service-tabungan (penyimpan rekening & transaksi)
    SAVINGS_SERVICE_URL = os.getenv('SAVINGS_SERVICE_URL', 'http://localhost:3004')

    # Harus SAMA dengan secret yang dipakai untuk menerbitkan token login
    JWT_SECRET = os.getenv('JWT_SECRET', 'changeme')
    JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')

    # Batas minimum transaksi tabungan (rupiah)
    MINIMUM_TRANSACTION_AMOUNT = Decimal(os.getenv('MINIMUM_TRANSACTION_AMOUNT', '1000'))

    # Timeout (detik) untuk memanggil service lain
    REQUEST_TIMEOUT = float(os.getenv('REQUEST_TIMEOUT', 10))

    PORT = int(os.getenv('PORT', 3000))
