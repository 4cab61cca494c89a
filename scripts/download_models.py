"""
Download models used by Kuber.
Run this script before going offline so parchi scanning and server-side
speech work without a network.
"""

import asyncio
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from kuber.config import get_settings, EDGE_TTS_VOICES

settings = get_settings()


def check_gpu():
    """Check if GPU is available."""
    try:
        import torch
        if torch.cuda.is_available():
            print(f"✅ GPU Available: {torch.cuda.get_device_name(0)}")
            return True
        else:
            print("⚠️  No GPU detected. The on-device chat model will be skipped (cloud model used).")
            return False
    except ImportError:
        print("⚠️  PyTorch not installed. Install with: pip install -e .[local-models]")
        return False


def download_ocr_models():
    """Download EasyOCR detection and recognition models."""
    print(f"\n📥 Downloading EasyOCR models for {settings.OCR_LANGUAGES}...")

    try:
        import easyocr

        model_path = settings.MODELS_DIR / "easyocr"
        model_path.mkdir(parents=True, exist_ok=True)
        easyocr.Reader(
            list(settings.OCR_LANGUAGES),
            gpu=False,
            model_storage_directory=str(model_path),
            verbose=False
        )
        print(f"✅ OCR models saved to: {model_path}")

    except ImportError:
        print("⚠️  EasyOCR not installed. Install with:")
        print("   pip install easyocr")
    except Exception as e:
        print(f"❌ Error downloading OCR models: {e}")


def download_local_llm():
    """Download the on-device chat model."""
    print(f"\n📥 Downloading local chat model ({settings.LOCAL_LLM_MODEL_ID})...")

    try:
        from transformers import AutoModelForCausalLM, AutoTokenizer

        AutoTokenizer.from_pretrained(settings.LOCAL_LLM_MODEL_ID, token=settings.HF_TOKEN)
        AutoModelForCausalLM.from_pretrained(settings.LOCAL_LLM_MODEL_ID, token=settings.HF_TOKEN)
        print("✅ Local chat model cached")

    except ImportError:
        print("⚠️  transformers not installed. Install with: pip install -e .[local-models]")
    except Exception as e:
        print(f"❌ Error downloading local chat model: {e}")


def download_stt_model():
    """Download AI4Bharat STT model for server voice mode."""
    print(f"\n📥 Downloading STT Model ({settings.STT_MODEL_ID})...")

    try:
        from transformers import AutoModel

        AutoModel.from_pretrained(
            settings.STT_MODEL_ID,
            trust_remote_code=True,
            token=settings.HF_TOKEN
        )
        print("✅ STT model cached")

    except ImportError:
        print("⚠️  transformers not installed. Install with: pip install -e .[local-models]")
    except Exception as e:
        print(f"❌ Error downloading STT model: {e}")


def check_tts_voices():
    """Verify the edge-tts voices Kuber speaks with are still offered."""
    print("\n📥 Checking TTS voices...")

    try:
        import edge_tts
    except ImportError:
        print("⚠️  Edge-TTS not installed. Install with:")
        print("   pip install edge-tts")
        return

    async def list_voices():
        voices = await edge_tts.list_voices()
        names = {v["ShortName"] for v in voices}
        for locale, voice in EDGE_TTS_VOICES.items():
            status = "✅" if voice in names else "❌"
            print(f"   {status} {locale}: {voice}")

    try:
        asyncio.run(list_voices())
    except Exception as e:
        print(f"❌ Error listing voices: {e}")


def main():
    """Main function."""
    print("=" * 60)
    print("🔧 Kuber Model Setup")
    print("=" * 60)

    has_gpu = check_gpu()

    print("\n📦 Model Options:")
    print("1. Download OCR models (offline parchi scanning)")
    print("2. Download local chat model (requires GPU)")
    print("3. Download STT model (server voice mode)")
    print("4. Check TTS voices")
    print("5. All of the above")

    choice = input("\nSelect option (1-5): ").strip()

    if choice in ("1", "5"):
        download_ocr_models()
    if choice in ("2", "5"):
        if has_gpu:
            download_local_llm()
        else:
            print("\n⏭️  Skipping local chat model (no GPU).")
    if choice in ("3", "5"):
        download_stt_model()
    if choice in ("4", "5"):
        check_tts_voices()

    print("\n✅ Setup complete!")


if __name__ == "__main__":
    main()
