"""OCR adapter for the numeric login captcha."""
from __future__ import annotations

import asyncio
import io
import re
from typing import Protocol

import pytesseract
from PIL import Image

DIGIT_WHITELIST = "0123456789"
MIN_CAPTCHA_LENGTH = 4


class CaptchaReader(Protocol):
    async def read(self, image: bytes) -> str:
        ...


def normalize_captcha_text(raw: str | None) -> str:
    return re.sub(r"\s", "", raw or "")


def is_plausible_captcha(code: str) -> bool:
    return len(code) >= MIN_CAPTCHA_LENGTH


class TesseractCaptchaReader:
    """Recognise captcha digits with Tesseract, restricted to ``0-9``."""

    def __init__(self, tesseract_cmd: str | None = None, *, whitelist: str = DIGIT_WHITELIST) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.whitelist = whitelist

    def _recognize(self, image: bytes) -> str:
        with Image.open(io.BytesIO(image)) as img:
            gray = img.convert("L")
            return pytesseract.image_to_string(
                gray,
                lang="eng",
                config=f"--psm 7 -c tessedit_char_whitelist={self.whitelist}",
            )

    async def read(self, image: bytes) -> str:
        raw = await asyncio.to_thread(self._recognize, image)
        return normalize_captcha_text(raw)
