import torch.nn as nn
from torch import Tensor
from torch.nn.utils.rnn import pack_padded_sequence, pad_packed_sequence

from decoder import Decoder
from layers import Embeddings


class Encoder(nn.Module):
    def __init__(self, embed_dim: int, hidden_dim: int):
        super(Encoder, self).__init__()
        self.rnn = nn.GRU(embed_dim, hidden_dim, batch_first=True, bidirectional=True)
        for p in self.parameters():
            if p.dim() > 1:
                nn.init.xavier_uniform_(p)

    def forward(self, src_embs: Tensor, src_mask: Tensor) -> Tensor:
        lengths = src_mask.sum(dim=-1).cpu()
        packed = pack_padded_sequence(src_embs, lengths, batch_first=True, enforce_sorted=False)
        src_encs, _ = self.rnn(packed)
        src_encs, _ = pad_packed_sequence(src_encs, batch_first=True, total_length=src_embs.size(1))
        return src_encs


class Model(nn.Module):
    def __init__(self, vocab_dim: int, embed_dim: int, hidden_dim: int, unk: int = 0):
        super(Model, self).__init__()
        self.src_embed = Embeddings(embed_dim, vocab_dim, unk)
        self.encoder = Encoder(embed_dim, hidden_dim)
        self.decoder = Decoder(vocab_dim, embed_dim, hidden_dim, 2 * hidden_dim, unk)

    def encode(self, src_nums: Tensor, src_mask: Tensor) -> Tensor:
        src_embs = self.src_embed(src_nums)
        return self.encoder(src_embs, src_mask)

    def forward(self, src_nums: Tensor, src_mask: Tensor) -> Tensor:
        return self.encode(src_nums, src_mask)
