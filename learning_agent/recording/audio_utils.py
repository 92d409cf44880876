import os

import numpy as np
import soundfile as sf


def join_blocks(blocks: list[np.ndarray]) -> np.ndarray:
    """Concatenate audio callback blocks into one flat float32 array."""
    if not blocks:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate(blocks, axis=0).flatten().astype(np.float32, copy=False)


def samples_to_wav(samples: np.ndarray, sample_rate: int, path: str) -> None:
    """Write float32 samples to a 16-bit PCM WAV file."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    sf.write(path, samples, sample_rate, subtype="PCM_16")
