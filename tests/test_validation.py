import pytest

from common.validation import looks_like_csv


@pytest.mark.parametrize(
    "sample",
    [
        b"age,outcome\n1,0\n",
        b"outcome\n1\n0\n",
        b"\n\n  \nage,outcome\n1,0\n",
        b"\xef\xbb\xbfname;city\r\nA;B\r\n",
        "caf\xe9,prix\n1,2\n".encode("latin-1"),
    ],
)
def test_text_uploads_are_accepted(sample):
    assert looks_like_csv(sample)


@pytest.mark.parametrize("sample", [b"", b"\n \n", b"\x00\x01\x02\x03", b"\x89PNG\r\n\x1a\n"])
def test_binary_or_blank_uploads_are_rejected(sample):
    assert not looks_like_csv(sample)
