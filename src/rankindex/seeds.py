import os, random
from typing import Optional

import numpy as np
import torch


def set_global_seed(seed: int):
    os.environ["PYTHONHASHSEED"] = str(seed)   # hash randomization
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)  # network initialisation


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    # None -> fresh OS entropy, so unseeded runs differ from each other
    return np.random.default_rng(seed)
