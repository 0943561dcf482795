import torch
import torch.nn as nn
from torch import Tensor


def masked_mean(x: Tensor, mask: Tensor | None = None) -> Tensor:
    if mask is None:
        return x.mean(dim=1)
    mask = mask.unsqueeze(-1).to(x.dtype)
    return (x * mask).sum(dim=1) / mask.sum(dim=1).clamp(min=1)


class Embeddings(nn.Module):
    def __init__(self, embed_dim: int, vocab_dim: int, unk: int = 0):
        super(Embeddings, self).__init__()
        self.weight = nn.Parameter(torch.empty(vocab_dim, embed_dim))
        nn.init.uniform_(self.weight, -0.01, 0.01)
        self.unk = unk

    def lookup(self, ids: list[int] | Tensor) -> Tensor:
        ids = torch.as_tensor(ids, dtype=torch.long, device=self.weight.device)
        # out-of-vocabulary ids resolve to the unknown token
        ids = ids.masked_fill((ids >= self.get_rows()) | (ids < 0), self.unk)
        return self.weight[ids]

    def get_rows(self) -> int:
        return self.weight.size(0)

    def get_cols(self) -> int:
        return self.weight.size(1)

    def forward(self, ids: list[int] | Tensor) -> Tensor:
        return self.lookup(ids)


class GRUCell(nn.Module):
    def __init__(self, input_dim: int, hidden_dim: int):
        super(GRUCell, self).__init__()
        self.gates_x = nn.Linear(input_dim, 2 * hidden_dim)
        self.gates_h = nn.Linear(hidden_dim, 2 * hidden_dim, bias=False)
        self.cand_x = nn.Linear(input_dim, hidden_dim)
        self.cand_h = nn.Linear(hidden_dim, hidden_dim, bias=False)

    def forward(self, state: Tensor, x: Tensor) -> Tensor:
        assert state.size(0) == x.size(0)
        reset, update = (self.gates_x(x) + self.gates_h(state)).sigmoid().chunk(2, dim=-1)
        candidate = (self.cand_x(x) + reset * self.cand_h(state)).tanh()
        return update * state + (1 - update) * candidate


class HiddenRNN(nn.Module):
    def __init__(self, embed_dim: int, ctx_dim: int, hidden_dim: int):
        super(HiddenRNN, self).__init__()
        self.init = nn.Linear(ctx_dim, hidden_dim)
        self.gru = GRUCell(embed_dim, hidden_dim)

    def initialize_state(
        self,
        src_encs: Tensor,
        src_mask: Tensor | None = None,
        batch_size: int | None = None,
        batch_mapping: Tensor | None = None,
    ) -> Tensor:
        state = self.init(masked_mean(src_encs, src_mask)).tanh()
        if batch_mapping is not None:
            return state[batch_mapping]
        if batch_size is None or batch_size == state.size(0):
            return state
        assert state.size(0) == 1, 'batch_mapping required for multi-sentence source context'
        return state.expand(batch_size, -1).contiguous()

    def get_next_state(self, prev_state: Tensor, embedding: Tensor) -> Tensor:
        return self.gru(prev_state, embedding)


class FinalRNN(nn.Module):
    def __init__(self, ctx_dim: int, hidden_dim: int):
        super(FinalRNN, self).__init__()
        self.gru = GRUCell(ctx_dim, hidden_dim)

    def get_next_state(self, hidden_state: Tensor, aligned_context: Tensor) -> Tensor:
        return self.gru(hidden_state, aligned_context)


class Attention(nn.Module):
    weights: Tensor | None

    def __init__(self, hidden_dim: int, ctx_dim: int, attn_dim: int | None = None):
        super(Attention, self).__init__()
        attn_dim = attn_dim or hidden_dim
        self.query = nn.Linear(hidden_dim, attn_dim)
        self.key = nn.Linear(ctx_dim, attn_dim, bias=False)
        self.score = nn.Linear(attn_dim, 1)
        self.weights = None

    def get_aligned_source_context(
        self,
        hidden_state: Tensor,
        src_encs: Tensor,
        src_mask: Tensor | None = None,
        batch_mapping: Tensor | None = None,
    ) -> Tensor:
        # keys are projected once per source sentence, then spread over its rows
        keys = self.key(src_encs)
        if batch_mapping is not None:
            keys, src_encs = keys[batch_mapping], src_encs[batch_mapping]
            if src_mask is not None:
                src_mask = src_mask[batch_mapping]
        assert keys.size(0) == hidden_state.size(0)

        scores = self.score((keys + self.query(hidden_state).unsqueeze(1)).tanh()).squeeze(-1)
        if src_mask is not None:
            scores = scores.masked_fill(src_mask == 0, -torch.inf)
        self.weights = scores.softmax(dim=-1)
        return (self.weights.unsqueeze(1) @ src_encs).squeeze(1)

    def get_attention(self) -> Tensor:
        assert self.weights is not None, 'no decoding step has been made'
        return self.weights


class Softmax(nn.Module):
    filtered_ids: Tensor | None

    def __init__(self, hidden_dim: int, embed_dim: int, ctx_dim: int, vocab_dim: int):
        super(Softmax, self).__init__()
        self.from_state = nn.Linear(hidden_dim, embed_dim)
        self.from_embed = nn.Linear(embed_dim, embed_dim)
        self.from_ctx = nn.Linear(ctx_dim, embed_dim)
        self.proj = nn.Linear(embed_dim, vocab_dim)
        self.filtered_ids = None

    def filter(self, ids: list[int] | Tensor | None):
        if ids is None:
            self.filtered_ids = None
            return
        ids = torch.as_tensor(ids, dtype=torch.long, device=self.proj.weight.device)
        assert ids.numel() > 0
        assert int(ids.min()) >= 0 and int(ids.max()) < self.proj.out_features
        self.filtered_ids = ids

    def get_probs(self, state: Tensor, embedding: Tensor, aligned_context: Tensor) -> Tensor:
        hidden = (
            self.from_state(state) + self.from_embed(embedding) + self.from_ctx(aligned_context)
        ).tanh()
        if self.filtered_ids is None:
            logits = self.proj(hidden)
        else:
            weight = self.proj.weight[self.filtered_ids]
            bias = self.proj.bias[self.filtered_ids]
            logits = nn.functional.linear(hidden, weight, bias)
        return logits.log_softmax(dim=-1)
