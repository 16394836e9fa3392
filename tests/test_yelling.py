"""Tests for the per-token yelling classifier."""

import pytest

from yellcop.utils.slack import is_yelling, render_template


class TestIsYelling:
    """Test suite for the capitalisation check."""

    @pytest.mark.parametrize("token", ["YELL", "HELLO!", "I'M", "WHY???", "A-OK", "ÉCOLE"])
    def test_uppercase_and_punctuation_is_yelling(self, token):
        """Uppercase letters mixed with punctuation count as shouting."""
        assert is_yelling(token)

    @pytest.mark.parametrize("token", ["talk", "Hello", "yELL", "LOUDa", "école"])
    def test_any_lowercase_letter_is_quiet(self, token):
        """A single lowercase letter is enough to fail."""
        assert not is_yelling(token)

    @pytest.mark.parametrize("token", ["", "1234", "...", "!!!", "42%", "🎉"])
    def test_tokens_without_letters_pass(self, token):
        """Digits, punctuation and raw emoji have no case and pass trivially."""
        assert is_yelling(token)

    def test_emoji_shortcode_alone_is_yelling(self):
        """A token that is only an emoji shortcode strips to nothing."""
        assert is_yelling(":smile:")
        assert is_yelling(":+1::skin-tone-2:")

    @pytest.mark.parametrize("word", ["hello", "HELLO", "Hi", "OK"])
    def test_shortcodes_do_not_change_the_outcome(self, word):
        """Appending a shortcode behaves exactly like the bare word."""
        assert is_yelling(word + ":smile:") == is_yelling(word)
        assert is_yelling(":wave:" + word) == is_yelling(word)

    def test_lowercase_shortcode_is_ignored(self):
        """Shortcode names are lowercase but never count against the author."""
        assert is_yelling("YES:white_check_mark:")

    @pytest.mark.parametrize(
        "token",
        [
            "http://example.com",
            "https://example.com/Some/Path",
            "<https://slack.com|link>",
        ],
    )
    def test_links_are_exempt(self, token):
        """Links are case sensitive, so they are never flagged."""
        assert is_yelling(token)

    def test_scheme_without_host_is_not_a_link(self):
        """The exemption needs at least one word character after the scheme."""
        assert not is_yelling("http://")

    def test_html_entities_are_decoded(self):
        """Slack escapes angle brackets and ampersands in message text."""
        assert is_yelling("&gt;ELL")
        assert is_yelling("&lt;ELL")
        assert is_yelling("R&amp;D")

    def test_entity_decoding_keeps_lowercase_detection(self):
        """Decoding does not hide lowercase letters around an entity."""
        assert not is_yelling("r&amp;d")


class TestRenderTemplate:
    """Rendering of response templates."""

    def test_substitutes_user_and_shouts(self):
        """The placeholder is replaced and the whole string uppercased."""
        assert render_template("careful <@{user}>!", "U123abc") == "CAREFUL <@U123ABC>!"

    def test_template_without_placeholder(self):
        """Templates without a placeholder are simply uppercased."""
        assert render_template("quiet please", "U1") == "QUIET PLEASE"

    def test_repeated_placeholder(self):
        """Every occurrence of the placeholder is filled."""
        assert render_template("{user} and {user}", "u9") == "U9 AND U9"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
