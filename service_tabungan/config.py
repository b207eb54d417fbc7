# service_tabungan/config.py

import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    # Koneksi ke database 'db_tabungan' (rekening + transaksi tabungan santri)
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL_TABUNGAN', 'mysql+pymysql://root:@localhost:3306/db_tabungan')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Service ini tidak membuat/memeriksa JWT; actor dikirim gateway lewat header X-User-Id
    PORT = int(os.getenv('PORT', 3004))
