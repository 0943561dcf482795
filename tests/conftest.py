import pytest
import torch

from decoder import Decoder
from enc_out import EncOut, Sentence

VOCAB_DIM = 20
EMBED_DIM = 8
HIDDEN_DIM = 12
CTX_DIM = 10
EOS = 2

CONFIG = {
    'embed_dim': 8,
    'hidden_dim': 6,
    'beam_size': 3,
    'max_length': 16,
    'batch_size': 32,
}
VOCAB = ['the 10', 'cat 8', 'sat 5', 'on 5', 'mat 2', '. 9']
CODES = ['#version: 0.2\n', 't h\n', 'th e</w>\n', 'c a\n', 'ca t</w>\n']


@pytest.fixture
def decoder() -> Decoder:
    torch.manual_seed(0)
    return Decoder(VOCAB_DIM, EMBED_DIM, HIDDEN_DIM, CTX_DIM, unk=0).eval()


@pytest.fixture
def make_enc_out():
    def make(lengths: list[int], line_nums: list[int] | None = None, seed: int = 0) -> EncOut:
        generator = torch.Generator().manual_seed(seed)
        if line_nums is None:
            line_nums = list(range(len(lengths)))
        max_len = max(lengths)
        src_encs = torch.randn(len(lengths), max_len, CTX_DIM, generator=generator)
        src_mask = torch.arange(max_len).unsqueeze(0) < torch.tensor(lengths).unsqueeze(1)
        sentences = [
            Sentence(line_num, [f'w{i}' for i in range(length)], list(range(length)))
            for line_num, length in zip(line_nums, lengths)
        ]
        return EncOut(src_encs, src_mask, sentences)

    return make
