import pytest

from card_chat.text.markdown import normalize


MESSY_TABLE = """Here is a comparison.

### Card Comparison

|Card|Annual Fee |
|:----- | -----:|

| HDFC Regalia|₹2,500 |
|SBI Cashback   |  ₹999|

That's all."""

BEST_SUITED_INLINE = """## Best Suited For
Overall | HDFC Regalia | Strong all-round rewards || Travel | Axis Atlas | Miles transfer || Shopping | Flipkart Axis

Apply online."""

BEST_SUITED_LINES = """##Best Suited For:

- Overall | HDFC Regalia | Rewards | no fee waiver
Travel | Axis Atlas
| Dining | Swiggy HDFC | 10% on Swiggy |"""

SAMPLES = [
    "",
    "plain text without markdown",
    MESSY_TABLE,
    BEST_SUITED_INLINE,
    BEST_SUITED_LINES,
    "#####Deep heading\n## ## Doubled\n#no space",
    "## Best Suited For\n- Overall: HDFC Regalia - great rewards\n- Travel: Axis Atlas - miles",
    "```bash\n# comment\n|a|b|\n```\n### Table\n| a |\n| b |",
    "### Lonely\n| just one row |\n\ntext",
    "# T\n|a||b|\n||\n|\\| escaped|x|",
    "## Recommendation by use case\nUse Case | Best Option | Reason\n--- | --- | ---\nFuel | BPCL SBI | 4.25% back",
    "windows\r\nline\r\n## endings\r\n",
    "|||\n#\n####\n:---:",
    "## Best Suited For\nOverall | A | B\n\n| x | y |\n| z | w |",
    "## Best Suited For\nOverall: HDFC Regalia\n\n| a | b |\n| c | d |",
    "#!/bin/bash\n####\n## #\ntext",
]


@pytest.mark.parametrize("text", SAMPLES)
def test_normalize_is_idempotent(text):
    once = normalize(text)
    assert normalize(once) == once


def test_table_cleanup():
    out = normalize(MESSY_TABLE)
    assert out == (
        "Here is a comparison.\n"
        "\n"
        "### Card Comparison\n"
        "| Card | Annual Fee |\n"
        "| :--- | ---: |\n"
        "| HDFC Regalia | ₹2,500 |\n"
        "| SBI Cashback | ₹999 |\n"
        "\n"
        "That's all."
    )


def test_missing_divider_is_inserted():
    out = normalize("### Fees\n| Card | Fee |\n| HDFC | 500 |")
    assert out == "### Fees\n| Card | Fee |\n| --- | --- |\n| HDFC | 500 |"


def test_best_suited_inline_delimiters_become_table():
    out = normalize(BEST_SUITED_INLINE)
    assert out == (
        "## Best Suited For\n"
        "| Use Case | Best Option | Reason |\n"
        "| --- | --- | --- |\n"
        "| Overall | HDFC Regalia | Strong all-round rewards |\n"
        "| Travel | Axis Atlas | Miles transfer |\n"
        "| Shopping | Flipkart Axis | - |\n"
        "\n"
        "Apply online."
    )


def test_best_suited_mixed_lines_are_padded_not_dropped():
    out = normalize(BEST_SUITED_LINES)
    assert out.splitlines() == [
        "## Best Suited For:",
        "| Use Case | Best Option | Reason |",
        "| --- | --- | --- |",
        "| Overall | HDFC Regalia | Rewards, no fee waiver |",
        "| Travel | Axis Atlas | - |",
        "| Dining | Swiggy HDFC | 10% on Swiggy |",
    ]


def test_best_suited_header_fragments_are_dropped():
    out = normalize(SAMPLES[10])
    assert out.splitlines() == [
        "## Recommendation by use case",
        "| Use Case | Best Option | Reason |",
        "| --- | --- | --- |",
        "| Fuel | BPCL SBI | 4.25% back |",
    ]


def test_best_suited_bullets_without_pipes_are_untouched():
    text = "## Best Suited For\n- Overall: HDFC Regalia - great rewards\n- Travel: Axis Atlas - miles"
    assert normalize(text) == text


def test_headings_are_collapsed_and_spaced():
    out = normalize("#####Deep heading\n## ## Doubled\n##  Spaced  \nC# is not a heading")
    assert out.splitlines() == [
        "### Deep heading",
        "### Doubled",
        "## Spaced",
        "C# is not a heading",
    ]


def test_fenced_code_is_untouched():
    text = "```bash\n#comment\n####   x\n```"
    assert normalize(text) == text


def test_normalize_never_raises_on_odd_input():
    assert normalize(None) == ""
    assert isinstance(normalize("|\n|\n#\n```"), str)
    assert normalize("plain text") == "plain text"


def test_best_suited_absorbs_rows_after_blank_line():
    text = "## Best Suited For\nOverall | A | B\n\n| x | y |\n| z | w |"
    out = normalize(text)
    assert out.splitlines() == [
        "## Best Suited For",
        "| Use Case | Best Option | Reason |",
        "| --- | --- | --- |",
        "| Overall | A | B |",
        "| x | y | - |",
        "| z | w | - |",
    ]
    assert normalize(out) == out


def test_hash_only_and_shebang_lines_are_not_headings():
    text = "#!/bin/bash\n####\ntext"
    assert normalize(text) == text
