from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class AudioSample:
    samples: np.ndarray
    sample_rate: int

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return float(len(self.samples)) / float(self.sample_rate)
