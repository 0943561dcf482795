from typing import Iterator

import torch
from torch import Tensor

from enc_out import EncOut, Sentence


class BeamError(Exception):
    pass


class BeamUnderflowError(BeamError):
    pass


class BeamPreconditionError(BeamError):
    pass


class SentenceElement:
    def __init__(self, enc_out: EncOut, sentence_ind: int, size: int):
        self.enc_out = enc_out
        self.sentence_ind = sentence_ind  # index into enc_out.sentences
        self.size = size  # live hypotheses, 0..beam

    def decr(self):
        if self.size == 0:
            raise BeamUnderflowError(
                f'sentence {self.get_sentence().line_num} has no live hypotheses'
            )
        self.size -= 1

    def get_sentence(self) -> Sentence:
        return self.enc_out.sentences[self.sentence_ind]

    def __repr__(self) -> str:
        return f'SentenceElement(line={self.get_sentence().line_num}, size={self.size})'


class BeamSize:
    """Live hypothesis counts for every sentence of a batch.

    Elements are kept in dense batch order; the line-number map holds slot
    indices and is rebuilt whenever the element list is resized.
    """

    def __init__(self):
        self._sentences: list[SentenceElement] = []
        self._line_map: dict[int, int] = {}
        self._total = 0
        self._max_length = 0

    def init(self, max_beam_size: int, enc_out: EncOut):
        self._sentences = [
            SentenceElement(enc_out, i, max_beam_size) for i in range(enc_out.size())
        ]
        self._rebuild_map()
        self._total = max_beam_size * len(self._sentences)
        self._max_length = max((len(s) for s in enc_out.sentences), default=0)

    def set(self, val: int):
        for element in self._sentences:
            element.size = val
        self._total = val * len(self._sentences)

    def size(self) -> int:
        return len(self._sentences)

    def __len__(self) -> int:
        return len(self._sentences)

    def __iter__(self) -> Iterator[SentenceElement]:
        return iter(self._sentences)

    def get_total(self) -> int:
        return self._total

    def get_max_length(self) -> int:
        return self._max_length

    def get(self, ind: int) -> SentenceElement:
        if not 0 <= ind < len(self._sentences):
            raise IndexError(f'batch slot {ind} out of range [0, {len(self._sentences)})')
        return self._sentences[ind]

    def get_by_line_num(self, line_num: int) -> SentenceElement:
        if line_num not in self._line_map:
            raise IndexError(f'line number {line_num} not in batch')
        return self._sentences[self._line_map[line_num]]

    def get_only(self) -> SentenceElement:
        if len(self._sentences) != 1:
            raise BeamPreconditionError(
                f'expected exactly one sentence, found {len(self._sentences)}'
            )
        return self._sentences[0]

    def get_sentence(self, ind: int) -> Sentence:
        return self.get(ind).get_sentence()

    def decr(self, ind: int):
        self.get(ind).decr()
        self._total -= 1

    def decr_by_line_num(self, line_num: int):
        self.get_by_line_num(line_num).decr()
        self._total -= 1

    def delete_empty(self):
        self._sentences = [element for element in self._sentences if element.size > 0]
        self._rebuild_map()

    def row_mapping(self, counts: list[int] | None = None, device: str | None = None) -> Tensor:
        """Map every dense row to the source sentence it decodes.

        Each slot contributes ``size`` rows, or ``counts[i]`` rows if given.
        """
        if counts is None:
            counts = [element.size for element in self._sentences]
        assert len(counts) == len(self._sentences)
        inds = [
            element.sentence_ind
            for element, count in zip(self._sentences, counts)
            for _ in range(count)
        ]
        return torch.tensor(inds, dtype=torch.long, device=device)

    def debug(self, verbosity: int = 1) -> str:
        out = f'sentences={len(self._sentences)} total={self._total}'
        out += f' max_length={self._max_length}'
        if verbosity > 1:
            for i, element in enumerate(self._sentences):
                sentence = element.get_sentence()
                out += f'\n  {i}: line={sentence.line_num} size={element.size}'
                out += f' length={len(sentence)}'
        return out

    def _rebuild_map(self):
        self._line_map = {
            element.get_sentence().line_num: i for i, element in enumerate(self._sentences)
        }
