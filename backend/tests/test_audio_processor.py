import numpy as np

from backend.app.core.audio_processor import AudioProcessor

from fakes import make_settings


def test_downsample_halves_sample_count():
    processor = AudioProcessor(make_settings())
    chunk = np.zeros(4800, dtype=np.float32).tobytes()
    out = processor.downsample(chunk)
    # 2400 int16 samples at 24 kHz
    assert len(out) == 4800
    assert processor.downsample(b"") == b""


def test_level():
    assert AudioProcessor.level(b"") == 0.0
    assert AudioProcessor.level(np.zeros(480, dtype=np.float32).tobytes()) == 0.0
    quiet = (np.ones(480, dtype=np.float32) * 0.05).tobytes()
    assert 0.19 < AudioProcessor.level(quiet) < 0.21
    assert AudioProcessor.level((np.ones(480, dtype=np.float32)).tobytes()) == 1.0
