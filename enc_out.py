from torch import Tensor


class Sentence:
    def __init__(self, line_num: int, words: list[str], nums: list[int]):
        assert len(words) == len(nums)
        self.line_num = line_num
        self.words = words
        self.nums = nums

    def __len__(self) -> int:
        return len(self.nums)

    def __repr__(self) -> str:
        return f'Sentence({self.line_num}, {" ".join(self.words)!r})'


Sentences = list[Sentence]


class EncOut:
    def __init__(self, src_encs: Tensor, src_mask: Tensor, sentences: Sentences):
        assert src_encs.size(0) == src_mask.size(0) == len(sentences)
        self._src_encs = src_encs
        self._src_mask = src_mask
        self._sentences = tuple(sentences)

    @property
    def src_encs(self) -> Tensor:
        return self._src_encs

    @property
    def src_mask(self) -> Tensor:
        return self._src_mask

    @property
    def sentences(self) -> tuple[Sentence, ...]:
        return self._sentences

    def size(self) -> int:
        return len(self._sentences)
