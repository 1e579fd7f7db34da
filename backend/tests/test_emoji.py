"""
Unit tests for emoji image normalization.
"""

from echomail.services.emoji import convert_emojis_to_unicode


class TestConvertEmojisToUnicode:
    """Emoji <img> tags become Unicode characters."""

    def test_emoji_class_with_alt(self):
        """An emoji-classed image becomes exactly its alt text."""
        html = '<img class="emoji" alt="😀" src="https://cdn.example.com/x.png">'
        assert convert_emojis_to_unicode(html) == "😀"

    def test_alt_before_class(self):
        """Attribute order does not matter and surrounding text is kept."""
        html = 'Hi <img alt="🎉" draggable="false" class="tiptap-emoji" src="/a.png"> there'
        assert convert_emojis_to_unicode(html) == "Hi 🎉 there"

    def test_data_emoji_attribute_without_alt(self):
        """data-emoji is used when there is no alt."""
        assert convert_emojis_to_unicode('<img data-emoji="🔥" src="/img/fire.png">') == "🔥"

    def test_codepoint_filename(self):
        """A hex code-point filename is decoded."""
        html = '<img src="https://twemoji.maxcdn.com/v/latest/72x72/1f600.png">'
        assert convert_emojis_to_unicode(html) == "\U0001F600"

    def test_codepoint_filename_with_u_prefix(self):
        """Filenames like u1f44d.svg are decoded too."""
        assert convert_emojis_to_unicode('<img src="/static/u1f44d.svg">') == "👍"

    def test_codepoint_sequence(self):
        """Hyphen-joined code points (flags) decode to the full sequence."""
        html = '<img src="https://cdn.example.com/svg/1f1fa-1f1f8.svg">'
        assert convert_emojis_to_unicode(html) == "\U0001F1FA\U0001F1F8"

    def test_named_emoji_file(self):
        """Known emoji names in the filename map to the character."""
        assert convert_emojis_to_unicode('<img src="/assets/emoji/rocket.png">') == "🚀"

    def test_named_emoji_with_hyphen(self):
        """Hyphenated names such as thumbs-up are recognized."""
        assert convert_emojis_to_unicode('<img src="/emoji/thumbs-up.gif">') == "👍"

    def test_unrecoverable_emoji_image_is_removed(self):
        """An emoji image with nothing to decode is dropped."""
        html = 'a<img class="emoji" src="/assets/emoji/unknown-thing.png">b'
        assert convert_emojis_to_unicode(html) == "ab"

    def test_invalid_codepoint_becomes_empty(self):
        """Code points beyond U+10FFFF produce nothing."""
        assert convert_emojis_to_unicode('<img src="/x/110000.png">') == ""

    def test_regular_images_untouched(self):
        """Ordinary images are left alone."""
        html = '<p><img src="https://example.com/logo.png" alt="Logo"></p>'
        assert convert_emojis_to_unicode(html) == html

    def test_hex_looking_words_are_not_codepoints(self):
        """Words made of hex letters are not treated as code points."""
        html = '<img src="https://example.com/cafe.png" alt="Cafe">'
        assert convert_emojis_to_unicode(html) == html

    def test_empty_input(self):
        assert convert_emojis_to_unicode("") == ""
