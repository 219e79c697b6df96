"""Tests for log section splitting."""

from research_stream.stream.sections import SectionKind, clean_log_text, split_sections


class TestCleanLogText:
    """Tests for transcript cleanup."""

    def test_strips_message_delimiters(self):
        text = "=" * 32 + " Ai Message " + "=" * 32 + "\nHello"

        assert clean_log_text(text) == "Hello"

    def test_strips_solution_block(self):
        assert clean_log_text("Thinking\n<solution>42</solution>") == "Thinking"

    def test_collapses_blank_lines(self):
        assert clean_log_text("a\n\n\n\nb") == "a\n\nb"


class TestSplitSections:
    """Tests for section splitting."""

    def test_tagged_sections(self):
        """Test plan, execute, observation and trailing text."""
        text = (
            "## Plan\n1. Load data\n"
            "<execute>print(df.head())</execute>\n"
            "<observation>gene score</observation>\n"
            "Done."
        )

        sections = split_sections(text)

        assert [s.kind for s in sections] == [
            SectionKind.PLAN,
            SectionKind.EXECUTE,
            SectionKind.OBSERVATION,
            SectionKind.TEXT,
        ]
        assert sections[0].content == "1. Load data"
        assert sections[1].content == "print(df.head())"
        assert sections[2].content == "gene score"
        assert sections[3].content == "Done."

    def test_plan_tag(self):
        sections = split_sections("<plan>step 1</plan>")

        assert sections[0].kind == SectionKind.PLAN
        assert sections[0].content == "step 1"

    def test_plain_text(self):
        sections = split_sections("just some text")

        assert len(sections) == 1
        assert sections[0].kind == SectionKind.TEXT

    def test_empty(self):
        assert split_sections("   ") == []
