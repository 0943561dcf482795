import torch
import torch.nn as nn
from torch import Tensor

from layers import Attention, Embeddings, FinalRNN, HiddenRNN, Softmax


class Decoder(nn.Module):
    """Conditional GRU decoder advancing every live hypothesis by one step.

    Each call to ``make_step`` runs the four sub-steps on the whole batch of
    rows; the recurrent state is owned and threaded through by the caller.
    """

    hidden_state: Tensor | None
    aligned_source_context: Tensor | None

    def __init__(
        self, vocab_dim: int, embed_dim: int, hidden_dim: int, ctx_dim: int, unk: int = 0
    ):
        super(Decoder, self).__init__()
        self.embeddings = Embeddings(embed_dim, vocab_dim, unk)
        self.rnn1 = HiddenRNN(embed_dim, ctx_dim, hidden_dim)
        self.attention = Attention(hidden_dim, ctx_dim)
        self.rnn2 = FinalRNN(ctx_dim, hidden_dim)
        self.softmax = Softmax(hidden_dim, embed_dim, ctx_dim, vocab_dim)
        for p in self.parameters():
            if p.dim() > 1 and p is not self.embeddings.weight:
                nn.init.xavier_uniform_(p)

        self.hidden_state = None
        self.aligned_source_context = None

    def make_step(
        self,
        state: Tensor,
        embeddings: Tensor,
        src_encs: Tensor,
        src_mask: Tensor | None = None,
        batch_mapping: Tensor | None = None,
    ) -> tuple[Tensor, Tensor]:
        assert state.size(0) == embeddings.size(0)
        if batch_mapping is None:
            assert src_encs.size(0) == state.size(0)
        else:
            assert batch_mapping.size(0) == state.size(0)

        self.hidden_state = self.get_hidden_state(state, embeddings)
        self.aligned_source_context = self.get_aligned_source_context(
            self.hidden_state, src_encs, src_mask, batch_mapping
        )
        next_state = self.get_next_state(self.hidden_state, self.aligned_source_context)
        probs = self.get_probs(next_state, embeddings, self.aligned_source_context)
        return next_state, probs

    def empty_state(
        self,
        src_encs: Tensor,
        src_mask: Tensor | None = None,
        batch_size: int | None = None,
        batch_mapping: Tensor | None = None,
    ) -> Tensor:
        return self.rnn1.initialize_state(src_encs, src_mask, batch_size, batch_mapping)

    def empty_embedding(self, batch_size: int) -> Tensor:
        weight = self.embeddings.weight
        return torch.zeros(
            batch_size, self.embeddings.get_cols(), dtype=weight.dtype, device=weight.device
        )

    def lookup(self, ids: list[int] | Tensor) -> Tensor:
        return self.embeddings.lookup(ids)

    def filter(self, ids: list[int] | Tensor | None):
        self.softmax.filter(ids)

    def get_filtered_ids(self) -> Tensor | None:
        return self.softmax.filtered_ids

    def get_attention(self) -> Tensor:
        return self.attention.get_attention()

    def get_vocab_size(self) -> int:
        return self.embeddings.get_rows()

    def get_hidden_state(self, prev_state: Tensor, embedding: Tensor) -> Tensor:
        return self.rnn1.get_next_state(prev_state, embedding)

    def get_aligned_source_context(
        self,
        hidden_state: Tensor,
        src_encs: Tensor,
        src_mask: Tensor | None = None,
        batch_mapping: Tensor | None = None,
    ) -> Tensor:
        return self.attention.get_aligned_source_context(
            hidden_state, src_encs, src_mask, batch_mapping
        )

    def get_next_state(self, hidden_state: Tensor, aligned_context: Tensor) -> Tensor:
        return self.rnn2.get_next_state(hidden_state, aligned_context)

    def get_probs(self, state: Tensor, embedding: Tensor, aligned_context: Tensor) -> Tensor:
        return self.softmax.get_probs(state, embedding, aligned_context)

    def forward(
        self,
        state: Tensor,
        embeddings: Tensor,
        src_encs: Tensor,
        src_mask: Tensor | None = None,
        batch_mapping: Tensor | None = None,
    ) -> tuple[Tensor, Tensor]:
        return self.make_step(state, embeddings, src_encs, src_mask, batch_mapping)
