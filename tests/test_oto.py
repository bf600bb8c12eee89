# File: tests/test_oto.py
"""
Tests for oto generation and post-processing.
"""

import os

import pytest

from voicebank_aligner.config import DEFAULT_CV_SUM, DEFAULT_VC_SUM, DEFAULT_VV_SUM
from voicebank_aligner.dictionaries import DsDictionary, PresampMappings
from voicebank_aligner.oto import (
    OtoEntry,
    OtoMode,
    RawOtoEntry,
    TextGridToOtoConverter,
    _div,
    _separate,
    apply_cvv_v_cross,
    apply_offset,
    apply_repeat,
    convert_from_config,
    generate_cvv_cv,
    generate_cvv_vc,
    generate_cvvc_cv,
    generate_cvvc_vc,
    generate_vcv_cv,
    generate_vcv_vc,
    is_zero_offset,
    round_ms,
    to_entries,
    write_final_oto,
    write_raw_oto,
)
from voicebank_aligner.utils import PhoneInterval, words_to_textgrid

from tests import create_word, create_word_list

IGNORE = {"R", "SP", "AP"}
WAV = "ka.wav"


def cues(entry):
    return tuple(round(v, 6) for v in (entry.left, entry.fixed, entry.right, entry.prevoice, entry.overlap))


@pytest.fixture
def segmented():
    """R | ka (consonant until 0.2) | R"""
    return [
        PhoneInterval(0.0, 0.1, 0.0, "R"),
        PhoneInterval(0.1, 0.35, 0.2, "ka"),
        PhoneInterval(0.35, 0.5, 0.35, "R"),
    ]


@pytest.fixture
def presamp():
    return PresampMappings(cv_v={"ka": "a", "sa": "a", "a": "a"}, cv_c={"ka": "k", "sa": "s"})


class TestHelpers:

    def test_zero_divisor_does_not_stretch(self):
        assert _div(150.0, 0) == 150.0
        assert _div(150.0, 3) == 50.0

    def test_separate_keeps_cues_apart(self):
        assert _separate(100.0, 100.0) == (80.0, 100.0)
        assert _separate(10.0, 10.0) == (10.0, 30.0)
        assert _separate(50.0, 80.0) == (50.0, 80.0)

    def test_round_half_to_even(self):
        assert round_ms(2.5) == 2
        assert round_ms(3.5) == 4
        assert round_ms(99.999999999) == 100


class TestCVVC:

    def test_silence_prefixed_cv(self, segmented):
        entries = generate_cvvc_cv(WAV, segmented, DEFAULT_CV_SUM, IGNORE)
        assert [e.alias for e in entries] == ["- ka"]
        assert cues(entries[0]) == (100.0, 150.0, -200.0, 100.0, 50.0)

    def test_isolated_cv_is_shifted(self):
        phones = [PhoneInterval(0.1, 0.35, 0.2, "ka")]
        entries = generate_cvvc_cv(WAV, phones, (1.0, 3.0, 1.5, 2.0, 2.0), IGNORE)
        # preutterance halves, left moves right by the removed 50 ms
        assert [e.alias for e in entries] == ["ka"]
        assert cues(entries[0]) == (150.0, 100.0, -150.0, 50.0, 25.0)

    def test_trailing_rest_has_no_alias(self):
        phones = [PhoneInterval(0.1, 0.35, 0.2, "ka"), PhoneInterval(0.35, 0.5, 0.35, "R")]
        assert [e.alias for e in generate_cvvc_cv(WAV, phones, DEFAULT_CV_SUM, IGNORE)] == ["ka"]

    def test_vowel_to_rest(self, segmented, presamp):
        entries = generate_cvvc_vc(WAV, segmented, presamp, DEFAULT_VC_SUM, DEFAULT_VV_SUM, IGNORE)
        assert [e.alias for e in entries] == ["a R"]
        assert cues(entries[0]) == (250.0, 100.0, -175.0, 100.0, 50.0)

    def test_vowel_to_consonant(self, presamp):
        phones = [
            PhoneInterval(0.0, 0.1, 0.0, "R"),
            PhoneInterval(0.1, 0.35, 0.2, "ka"),
            PhoneInterval(0.35, 0.6, 0.45, "sa"),
            PhoneInterval(0.6, 0.7, 0.6, "R"),
        ]
        entries = generate_cvvc_vc(WAV, phones, presamp, DEFAULT_VC_SUM, DEFAULT_VV_SUM, IGNORE)
        assert [e.alias for e in entries] == ["a s", "a R"]
        assert cues(entries[0]) == (250.0, 100.0, -150.0, 100.0, 50.0)

    def test_vowel_to_vowel(self, presamp):
        phones = [
            PhoneInterval(0.1, 0.35, 0.2, "ka"),
            PhoneInterval(0.35, 0.6, 0.35, "a"),
        ]
        entries = generate_cvvc_vc(WAV, phones, presamp, DEFAULT_VC_SUM, DEFAULT_VV_SUM, IGNORE)
        assert [e.alias for e in entries] == ["a a"]


class TestVCV:

    def test_cv_fixed_from_right(self, segmented):
        entries = generate_vcv_cv(WAV, segmented, DEFAULT_CV_SUM, IGNORE)
        assert [e.alias for e in entries] == ["- ka"]
        left, fixed, right, prevoice, overlap = cues(entries[0])
        assert fixed == pytest.approx(100 + 100 / 3, abs=1e-5)
        assert (left, right, prevoice, overlap) == (100.0, -200.0, 100.0, 50.0)

    def test_vowel_tail_overlap_from_vowel(self, segmented, presamp):
        entries = generate_vcv_vc(WAV, segmented, presamp, DEFAULT_VC_SUM, IGNORE)
        assert [e.alias for e in entries] == ["a R"]
        assert cues(entries[0])[4] == 75.0


class TestCVV:

    def test_bare_cv_aliases(self, segmented):
        entries = generate_cvv_cv(WAV, segmented, DEFAULT_CV_SUM, IGNORE)
        assert [e.alias for e in entries] == ["ka"]

    def test_final_unit(self):
        phones = [PhoneInterval(0.0, 0.1, 0.0, "R"), PhoneInterval(0.1, 0.35, 0.2, "ka")]
        entries = generate_cvv_cv(WAV, phones, DEFAULT_CV_SUM, IGNORE)
        assert [e.alias for e in entries] == ["ka", "ka"]

    def test_vowel_only_cross(self):
        entries = [RawOtoEntry(WAV, "a", 0, 60, -100, 30, 10), RawOtoEntry(WAV, "ka", 0, 60, -100, 30, 10)]
        crossed = apply_cvv_v_cross(entries, {"a"}, 1.5)
        assert crossed[0].overlap == pytest.approx(40.0)
        assert crossed[1].overlap == 10
        assert apply_cvv_v_cross(entries, {"a"}, 0) == entries

    def test_tail_units(self, segmented, presamp):
        entries = generate_cvv_vc(WAV, segmented, presamp.cv_v, DEFAULT_VC_SUM, IGNORE)
        assert [e.alias for e in entries] == ["a R", "_a"]
        assert cues(entries[0]) == (250.0, 100.0, -150.0, 100.0, 75.0)
        assert cues(entries[1]) == (250.0, 43.75, -100.0, 25.0, 12.5)


class TestPostProcessing:

    @pytest.fixture
    def entry(self):
        return OtoEntry(WAV, "- ka", 100, 150, -200, 100, 50)

    def test_to_entries_rounds(self):
        raw = RawOtoEntry(WAV, "- ka", 100.4, 150.5, -200.6, 99.5, 50.0)
        assert to_entries([raw]) == [OtoEntry(WAV, "- ka", 100, 150, -201, 100, 50)]

    def test_repeat_cap(self, entry):
        entries = [entry, entry, entry, OtoEntry(WAV, "a R", 250, 100, -175, 100, 50)]
        assert [e.alias for e in apply_repeat(entries, 1)] == ["- ka", "a R"]
        assert [e.alias for e in apply_repeat(entries, 2)] == ["- ka", "- ka_1", "a R"]
        assert [e.alias for e in apply_repeat(entries, 3)] == ["- ka", "- ka_1", "- ka_2", "a R"]

    def test_offset(self, entry):
        shifted = apply_offset([entry], (10, 0, 0, -200, -100))[0]
        assert (shifted.left, shifted.fixed, shifted.right, shifted.prevoice, shifted.overlap) == (
            110, 150, -200, 100, 20)

    def test_offset_keeps_right_past_fixed(self, entry):
        shifted = apply_offset([entry], (0, 100, -100, 0, 0))[0]
        assert shifted.fixed == 250
        assert shifted.right == -260

    def test_zero_offset(self):
        assert is_zero_offset((0.0, 0.0, 0.0, 0.0, 0.0))
        assert not is_zero_offset((0.0, 0.0, 1.0, 0.0, 0.0))


class TestWriters:

    def test_final_line_with_pitch(self, tmp_path):
        path = write_final_oto(str(tmp_path / "oto.ini"), [OtoEntry(WAV, "- ka", 100, 150, -200, 100, 50)], pitch="C4")
        with open(path, encoding="utf-8") as f:
            assert f.read() == "ka.wav=- kaC4,100,150,-200,100,50\n"

    def test_raw_line(self, tmp_path):
        path = write_raw_oto(str(tmp_path / "cv_oto.ini"), [RawOtoEntry(WAV, "ka", 100.0, 133.333333333, -200.5, 100, 0)])
        with open(path, encoding="utf-8") as f:
            assert f.read() == "ka.wav=ka,100,133.33333333,-200.5,100,0\n"

    def test_cover_no_picks_fresh_name(self, tmp_path):
        target = tmp_path / "oto.ini"
        target.write_text("keep\n", encoding="utf-8")
        path = write_final_oto(str(target), [], cover="N")
        assert os.path.basename(path) == "oto_01.ini"
        assert target.read_text(encoding="utf-8") == "keep\n"
        assert write_final_oto(str(target), [], cover="Y") == str(target)


class TestConverter:

    @pytest.fixture
    def voicebank(self, tmp_path):
        """A one-recording voicebank with an aligned TextGrid and its config."""
        wav_dir = tmp_path / "voice"
        grid_dir = wav_dir / "TextGrid"
        grid_dir.mkdir(parents=True)
        words = create_word_list(
            create_word(0.0, 0.1, "SP"),
            create_word(0.1, 0.35, "ka", [(0.1, 0.2, "k"), (0.2, 0.35, "a")]),
            create_word(0.35, 0.5, "SP"),
        )
        words_to_textgrid(words, 0.5, str(grid_dir / "ka.TextGrid"))

        (tmp_path / "ds.txt").write_text("ka k a\n", encoding="utf-8")
        (tmp_path / "presamp.ini").write_text("[VOWEL]\na=a=ka=100\n[CONSONANT]\nk=ka=0\n", encoding="utf-8")
        config = tmp_path / "oto_config.ini"
        config.write_text(
            "# aligner run\n"
            f"wav_path={wav_dir}\n"
            f"ds_dict={tmp_path / 'ds.txt'}\n"
            f"presamp={tmp_path / 'presamp.ini'}\n"
            "VCV_mode=0\n",
            encoding="utf-8",
        )
        return wav_dir, config

    def test_convert_from_config(self, voicebank):
        wav_dir, config = voicebank
        out_path = convert_from_config(str(config))
        assert out_path == str(wav_dir / "oto.ini")
        with open(out_path, encoding="utf-8") as f:
            lines = f.read().splitlines()
        assert lines == ["ka.wav=- ka,100,150,-200,100,50", "ka.wav=a R,250,100,-175,100,50"]
        assert (wav_dir / "cv_oto.ini").exists()
        assert (wav_dir / "vc_oto.ini").exists()

    def test_divisor_length_is_checked(self):
        with pytest.raises(ValueError):
            TextGridToOtoConverter(DsDictionary(), PresampMappings(), IGNORE, OtoMode.CVVC,
                                   (1, 2, 3, 4), DEFAULT_VC_SUM, DEFAULT_VV_SUM)

    def test_missing_textgrid_folder(self, tmp_path):
        converter = TextGridToOtoConverter(DsDictionary(), PresampMappings(), IGNORE, 0,
                                           DEFAULT_CV_SUM, DEFAULT_VC_SUM, DEFAULT_VV_SUM)
        with pytest.raises(FileNotFoundError):
            converter.convert_directory(str(tmp_path / "nowhere"))
