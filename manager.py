import math
import re
from io import StringIO

import torch
import torch.nn as nn
from sacremoses import MosesDetokenizer, MosesTokenizer
from subword_nmt.apply_bpe import BPE

from decoder import Decoder
from enc_out import EncOut, Sentence, Sentences
from model import Model


class Vocab:
    def __init__(self, words: list[str] | None = None):
        self.num_to_word = ['<UNK>', '<BOS>', '<EOS>', '<PAD>']
        self.word_to_num = {x: i for i, x in enumerate(self.num_to_word)}

        self.UNK = self.word_to_num['<UNK>']
        self.BOS = self.word_to_num['<BOS>']
        self.EOS = self.word_to_num['<EOS>']
        self.PAD = self.word_to_num['<PAD>']

        if words is not None:
            for line in words:
                self.add(line.split()[0])

    def add(self, word: str):
        if word not in self.word_to_num:
            self.word_to_num[word] = self.size()
            self.num_to_word.append(word)

    def numberize(self, words: list[str]) -> list[int]:
        return [self.word_to_num[word] if word in self.word_to_num else self.UNK for word in words]

    def denumberize(self, nums: list[int]) -> list[str]:
        try:
            start = nums.index(self.BOS) + 1
        except ValueError:
            start = 0
        try:
            end = nums.index(self.EOS)
        except ValueError:
            end = len(nums)
        return [self.num_to_word[num] if num < self.size() else '<UNK>' for num in nums[start:end]]

    def size(self) -> int:
        return len(self.num_to_word)


class Tokenizer:
    def __init__(self, bpe: BPE, src_lang: str, tgt_lang: str | None = None):
        self.bpe = bpe
        self.src_lang = src_lang
        self.tgt_lang = tgt_lang
        self.tokenizer = MosesTokenizer(src_lang)
        lang = tgt_lang if tgt_lang else src_lang
        self.detokenizer = MosesDetokenizer(lang)

    def tokenize(self, text: str) -> str:
        tokens = self.tokenizer.tokenize(text)
        return self.bpe.process_line(' '.join(tokens))

    def detokenize(self, tokens: list[str]) -> str:
        text = self.detokenizer.detokenize(tokens)
        return re.sub('(@@ )|(@@ ?$)', '', text)


def parse_overrides(config: dict, unknown: list[str]) -> dict:
    for i, arg in enumerate(unknown):
        if arg[:2] == '--' and len(unknown) > i + 1:
            option, value = arg[2:].replace('-', '_'), unknown[i + 1]
            config[option] = (int if value.isdigit() else float)(value)
    return config


class Manager:
    embed_dim: int
    hidden_dim: int
    beam_size: int
    max_length: int
    max_length_factor: float
    batch_size: int
    n_best: int
    normalize: bool

    def __init__(
        self,
        src_lang: str,
        tgt_lang: str,
        config: dict,
        device: str,
        vocab_file: str | list[str],
        codes_file: str | list[str],
    ):
        self.src_lang = src_lang
        self.tgt_lang = tgt_lang
        self.config = config
        self.device = device
        self._vocab_list = vocab_file
        self._codes_list = codes_file

        self.max_length_factor = 3.0
        self.n_best = 1
        self.normalize = True
        for option, value in config.items():
            self.__setattr__(option, value)

        if isinstance(self._vocab_list, str):
            with open(self._vocab_list) as file:
                self._vocab_list = list(file.readlines())
        self.vocab = Vocab(self._vocab_list)

        if isinstance(self._codes_list, str):
            with open(self._codes_list) as file:
                self._codes_list = list(file.readlines())
        self.bpe = BPE(StringIO(''.join(self._codes_list)))

        self.model = Model(
            self.vocab.size(), self.embed_dim, self.hidden_dim, self.vocab.UNK
        ).to(device)

    @property
    def decoder(self) -> Decoder:
        return self.model.decoder

    def load_model(self, state_dict: dict):
        self.model.load_state_dict(state_dict)
        self.model.eval()

    def make_sentence(self, line_num: int, string: str, tokenizer: Tokenizer) -> Sentence:
        src_words = tokenizer.tokenize(string).split()
        if self.max_length and len(src_words) > self.max_length - 2:
            src_words = src_words[: self.max_length - 2]
        src_words = ['<BOS>'] + src_words + ['<EOS>']
        return Sentence(line_num, src_words, self.vocab.numberize(src_words))

    def batch_sentences(self, sentences: Sentences) -> list[Sentences]:
        unbatched = sorted(sentences, key=len, reverse=True)

        batched, i = [], 0
        while i < len(unbatched):
            batch_size = max(self.batch_size // len(unbatched[i]), 1)
            batch_size = 2 ** math.floor(math.log2(batch_size))
            batched.append(unbatched[i : (i + batch_size)])
            i += batch_size

        return batched

    def encode(self, sentences: Sentences) -> EncOut:
        max_src_len = math.ceil(max(len(sentence) for sentence in sentences) / 8) * 8
        src_nums = torch.stack(
            [
                nn.functional.pad(
                    torch.tensor(sentence.nums),
                    (0, max_src_len - len(sentence)),
                    value=self.vocab.PAD,
                )
                for sentence in sentences
            ]
        ).to(self.device)
        src_mask = src_nums != self.vocab.PAD
        src_encs = self.model.encode(src_nums, src_mask)
        return EncOut(src_encs, src_mask, sentences)


def load_manager(model_file: str, device: str, unknown: list[str] | None = None) -> Manager:
    model_dict = torch.load(model_file, map_location=device)
    src_lang, tgt_lang = model_dict['src_lang'], model_dict['tgt_lang']
    vocab_list, codes_list = model_dict['vocab_list'], model_dict['codes_list']
    config = parse_overrides(model_dict['model_config'], unknown or [])

    manager = Manager(src_lang, tgt_lang, config, device, vocab_list, codes_list)
    manager.load_model(model_dict['state_dict'])
    return manager
