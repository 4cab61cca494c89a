"""
Kuber - Voice Assistant for Kirana Shops
========================================
A hands-free, multilingual business assistant for small Indian shops.

Features:
- Continuous voice loop with silence-based commit
- Rule-based intent detection for Hinglish, Hindi and English commands
- Stock, order, profit, udhar-khata and shipping actions
- Parchi (bill photo) extraction with offline OCR fallback

Tech Stack:
- FastAPI (async backend)
- Groq API (chat and vision models)
- EasyOCR (offline parchi reading)
- edge-tts / AI4Bharat IndicConformer (server-side speech)
"""

__version__ = "1.0.0"
__author__ = "Kuber Team"
