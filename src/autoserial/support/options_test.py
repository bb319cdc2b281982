import unittest

from hamcrest import assert_that, is_, calling, raises

from autoserial.support.options import Options, coerce, key_name, unescape


class SampleOptions(Options):
    defaults = {
        'encoding': 'utf-8',
        'max_buffer_length': 65536,
        'include_delimiter': True,
        'timeout': 2.0,
    }


class OptionsTest(unittest.TestCase):

    def test_defaults_when_none(self):
        sut = SampleOptions.from_parameters(None)
        assert_that(sut, is_(SampleOptions()))
        assert_that(sut.max_buffer_length, is_(65536))

    def test_from_mapping_of_text(self):
        sut = SampleOptions.from_parameters({'max_buffer_length': '10', 'include_delimiter': 'no'})
        assert_that(sut.max_buffer_length, is_(10))
        assert_that(sut.include_delimiter, is_(False))

    def test_from_camel_case_json(self):
        sut = SampleOptions.from_parameters('{"maxBufferLength": 12, "includeDelimiter": false, "timeout": 1}')
        assert_that(sut.max_buffer_length, is_(12))
        assert_that(sut.include_delimiter, is_(False))
        assert_that(sut.timeout, is_(1.0))

    def test_invalid_value_keeps_default(self):
        sut = SampleOptions.from_parameters({'max_buffer_length': 'lots', 'encoding': 'ascii'})
        assert_that(sut.max_buffer_length, is_(65536))
        assert_that(sut.encoding, is_('ascii'))

    def test_invalid_json_gives_defaults(self):
        assert_that(SampleOptions.from_parameters('{not json'), is_(SampleOptions()))

    def test_blank_text_gives_defaults(self):
        assert_that(SampleOptions.from_parameters('  '), is_(SampleOptions()))

    def test_non_mapping_gives_defaults(self):
        assert_that(SampleOptions.from_parameters('[1, 2]'), is_(SampleOptions()))

    def test_unknown_keys_ignored(self):
        sut = SampleOptions.from_parameters({'colour': 'red'})
        assert_that(hasattr(sut, 'colour'), is_(False))


class CoerceTest(unittest.TestCase):

    def test_bool(self):
        for text in ('true', 'Yes', 'on', '1'):
            assert_that(coerce(text, False), is_(True))
        for text in ('false', 'No', 'off', '0'):
            assert_that(coerce(text, True), is_(False))
        assert_that(calling(coerce).with_args('maybe', True), raises(ValueError))

    def test_int(self):
        assert_that(coerce(' 42 ', 0), is_(42))
        assert_that(calling(coerce).with_args(True, 0), raises(ValueError))
        assert_that(calling(coerce).with_args('4.5', 0), raises(ValueError))

    def test_float(self):
        assert_that(coerce('2.5', 1.0), is_(2.5))
        assert_that(coerce(3, 1.0), is_(3.0))

    def test_text(self):
        assert_that(coerce(5, ''), is_('5'))


class TextTest(unittest.TestCase):

    def test_key_name(self):
        assert_that(key_name('maxBufferLength'), is_(key_name('max_buffer_length')))

    def test_unescape(self):
        assert_that(unescape('\\r\\n'), is_('\r\n'))
        assert_that(unescape('\\t\\0'), is_('\t\0'))
        assert_that(unescape('\\x02abc\\x03'), is_('\x02abc\x03'))
        assert_that(unescape('a\\\\n'), is_('a\\n'))
        assert_that(unescape('plain'), is_('plain'))
