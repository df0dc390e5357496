# /app/utils/qr_util.py
import base64
import io
import secrets
import string

import qrcode
import qrcode.image.svg
from flask import current_app

SHORT_CODE_LENGTH = 8
SHORT_CODE_ALPHABET = string.ascii_letters + string.digits + '_-'
MAX_SHORT_CODE_ATTEMPTS = 5


def generate_short_code(length=SHORT_CODE_LENGTH):
    """Random URL-safe code printed into the QR image."""
    return ''.join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


def build_form_url(short_code, base_url=None):
    base = base_url or current_app.config.get('APP_BASE_URL') or 'http://localhost:3000'
    return f"{base.rstrip('/')}/c/{short_code}"


def _make_qr(url, border=2):
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=10, border=border)
    qr.add_data(url)
    qr.make(fit=True)
    return qr


def qr_png_data_url(url):
    image = _make_qr(url).make_image(fill_color='black', back_color='white')
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')


def qr_svg(url):
    image = _make_qr(url).make_image(image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue().decode('utf-8')


def qr_images(short_code):
    url = build_form_url(short_code)
    return {
        'url': url,
        'qrDataUrl': qr_png_data_url(url),
        'qrSvg': qr_svg(url),
    }
