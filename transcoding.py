#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import codecs
import encodings.cp1252
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from tail_model import UnsupportedEncoding

# WHATWG Encoding Standard: encoding name -> (python codec, labels).
# GBK decodes as gb18030 and Shift_JIS/EUC-KR as the Microsoft supersets, as browsers do.
WHATWG_ENCODINGS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "UTF-8": ("utf-8", ("unicode-1-1-utf-8", "unicode11utf8", "unicode20utf8", "utf-8", "utf8", "x-unicode20utf8")),
    "IBM866": ("cp866", ("866", "cp866", "csibm866", "ibm866")),
    "ISO-8859-2": ("iso8859_2", ("csisolatin2", "iso-8859-2", "iso-ir-101", "iso8859-2", "iso88592", "iso_8859-2", "iso_8859-2:1987", "l2", "latin2")),
    "ISO-8859-3": ("iso8859_3", ("csisolatin3", "iso-8859-3", "iso-ir-109", "iso8859-3", "iso88593", "iso_8859-3", "iso_8859-3:1988", "l3", "latin3")),
    "ISO-8859-4": ("iso8859_4", ("csisolatin4", "iso-8859-4", "iso-ir-110", "iso8859-4", "iso88594", "iso_8859-4", "iso_8859-4:1988", "l4", "latin4")),
    "ISO-8859-5": ("iso8859_5", ("csisolatincyrillic", "cyrillic", "iso-8859-5", "iso-ir-144", "iso8859-5", "iso88595", "iso_8859-5", "iso_8859-5:1988")),
    "ISO-8859-6": ("iso8859_6", ("arabic", "asmo-708", "csiso88596e", "csiso88596i", "csisolatinarabic", "ecma-114", "iso-8859-6", "iso-8859-6-e", "iso-8859-6-i", "iso-ir-127", "iso8859-6", "iso88596", "iso_8859-6", "iso_8859-6:1987")),
    "ISO-8859-7": ("iso8859_7", ("csisolatingreek", "ecma-118", "elot_928", "greek", "greek8", "iso-8859-7", "iso-ir-126", "iso8859-7", "iso88597", "iso_8859-7", "iso_8859-7:1987", "sun_eu_greek")),
    "ISO-8859-8": ("iso8859_8", ("csiso88598e", "csisolatinhebrew", "hebrew", "iso-8859-8", "iso-8859-8-e", "iso-ir-138", "iso8859-8", "iso88598", "iso_8859-8", "iso_8859-8:1988", "visual")),
    "ISO-8859-8-I": ("iso8859_8", ("csiso88598i", "iso-8859-8-i", "logical")),
    "ISO-8859-10": ("iso8859_10", ("csisolatin6", "iso-8859-10", "iso-ir-157", "iso8859-10", "iso885910", "l6", "latin6")),
    "ISO-8859-13": ("iso8859_13", ("iso-8859-13", "iso8859-13", "iso885913")),
    "ISO-8859-14": ("iso8859_14", ("iso-8859-14", "iso8859-14", "iso885914")),
    "ISO-8859-15": ("iso8859_15", ("csisolatin9", "iso-8859-15", "iso8859-15", "iso885915", "iso_8859-15", "l9")),
    "ISO-8859-16": ("iso8859_16", ("iso-8859-16",)),
    "KOI8-R": ("koi8_r", ("cskoi8r", "koi", "koi8", "koi8-r", "koi8_r")),
    "KOI8-U": ("koi8_u", ("koi8-ru", "koi8-u")),
    "macintosh": ("mac_roman", ("csmacintosh", "mac", "macintosh", "x-mac-roman")),
    "windows-874": ("cp874", ("dos-874", "iso-8859-11", "iso8859-11", "iso885911", "tis-620", "windows-874")),
    "windows-1250": ("cp1250", ("cp1250", "windows-1250", "x-cp1250")),
    "windows-1251": ("cp1251", ("cp1251", "windows-1251", "x-cp1251")),
    "windows-1252": ("windows-1252", ("ansi_x3.4-1968", "ascii", "cp1252", "cp819", "csisolatin1", "ibm819", "iso-8859-1", "iso-ir-100", "iso8859-1", "iso88591", "iso_8859-1", "iso_8859-1:1987", "l1", "latin1", "us-ascii", "windows-1252", "x-cp1252")),
    "windows-1253": ("cp1253", ("cp1253", "windows-1253", "x-cp1253")),
    "windows-1254": ("cp1254", ("cp1254", "csisolatin5", "iso-8859-9", "iso-ir-148", "iso8859-9", "iso88599", "iso_8859-9", "iso_8859-9:1989", "l5", "latin5", "windows-1254", "x-cp1254")),
    "windows-1255": ("cp1255", ("cp1255", "windows-1255", "x-cp1255")),
    "windows-1256": ("cp1256", ("cp1256", "windows-1256", "x-cp1256")),
    "windows-1257": ("cp1257", ("cp1257", "windows-1257", "x-cp1257")),
    "windows-1258": ("cp1258", ("cp1258", "windows-1258", "x-cp1258")),
    "x-mac-cyrillic": ("mac_cyrillic", ("x-mac-cyrillic", "x-mac-ukrainian")),
    "GBK": ("gb18030", ("chinese", "csgb2312", "csiso58gb231280", "gb2312", "gb_2312", "gb_2312-80", "gbk", "iso-ir-58", "x-gbk")),
    "gb18030": ("gb18030", ("gb18030",)),
    "Big5": ("big5hkscs", ("big5", "big5-hkscs", "cn-big5", "csbig5", "x-x-big5")),
    "EUC-JP": ("euc_jp", ("cseucpkdfmtjapanese", "euc-jp", "x-euc-jp")),
    "ISO-2022-JP": ("iso2022_jp", ("csiso2022jp", "iso-2022-jp")),
    "Shift_JIS": ("cp932", ("csshiftjis", "ms932", "ms_kanji", "shift-jis", "shift_jis", "sjis", "windows-31j", "x-sjis")),
    "EUC-KR": ("cp949", ("cseuckr", "csksc56011987", "euc-kr", "iso-ir-149", "korean", "ks_c_5601-1987", "ks_c_5601-1989", "ksc5601", "ksc_5601", "windows-949")),
    "UTF-16BE": ("utf-16-be", ("unicodefffe", "utf-16be")),
    "UTF-16LE": ("utf-16-le", ("csunicode", "iso-10646-ucs-2", "ucs-2", "unicode", "unicodefeff", "utf-16", "utf-16le")),
}

LABELS: Dict[str, str] = {label: name for name, (_, labels) in WHATWG_ENCODINGS.items() for label in labels}

BOMS: Tuple[Tuple[bytes, str], ...] = (
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)

# windows-1252 with the five bytes cp1252 leaves undefined mapped to their C1 controls
WINDOWS_1252_TABLE = "".join(
    chr(i) if ch == "\ufffe" and 0x80 <= i <= 0x9F else ch
    for i, ch in enumerate(encodings.cp1252.decoding_table)
)


class _Windows1252Decoder(codecs.IncrementalDecoder):
    def decode(self, input, final=False):
        return codecs.charmap_decode(input, self.errors, WINDOWS_1252_TABLE)[0]


def _windows_1252() -> codecs.CodecInfo:
    return codecs.CodecInfo(
        name="windows-1252",
        encode=codecs.lookup("cp1252").encode,
        decode=lambda data, errors="strict": codecs.charmap_decode(data, errors, WINDOWS_1252_TABLE),
        incrementaldecoder=_Windows1252Decoder,
    )


def sniff_bom(head: bytes) -> Optional[Tuple[str, int]]:
    for bom, codec in BOMS:
        if head.startswith(bom):
            return codec, len(bom)
    return None


def _maybe_bom(head: bytes) -> bool:
    return any(len(head) < len(bom) and bom.startswith(head) for bom, _ in BOMS)


class BomSniffingDecoder(codecs.IncrementalDecoder):
    """
    Start-of-stream decoder: a leading UTF-8/UTF-16 BOM overrides the label and is dropped.
    Bytes that may still turn into a BOM are held back (reported by getstate()).
    """
    def __init__(self, fallback: codecs.CodecInfo, errors: str = "replace"):
        super().__init__(errors)
        self.fallback = fallback
        self._head = b""
        self._inner: Optional[codecs.IncrementalDecoder] = None

    def decode(self, input, final=False):
        if self._inner is not None:
            return self._inner.decode(input, final)
        self._head += bytes(input)
        found = sniff_bom(self._head)
        if found is None and _maybe_bom(self._head) and not final:
            return ""
        skip = 0
        info = self.fallback
        if found is not None:
            info = codecs.lookup(found[0])
            skip = found[1]
        self._inner = info.incrementaldecoder(self.errors)
        data, self._head = self._head[skip:], b""
        return self._inner.decode(data, final)

    def getstate(self):
        if self._inner is None:
            return (self._head, 0)
        return self._inner.getstate()

    def reset(self):
        self._head = b""
        self._inner = None


@dataclass(frozen=True)
class Decoding:
    """
    Resolved source encoding. Decoding never fails: bad sequences become U+FFFD.

    decode() is the one-shot form (whole byte string in, text out); the tail
    engine uses incremental() so characters split across reads survive.
    """
    name: str
    info: codecs.CodecInfo
    whatwg: bool = True

    def incremental(self, head: Optional[bytes] = None) -> codecs.IncrementalDecoder:
        """
        head=None: decoder for the start of the stream (BOM sniffing).
        head=<first bytes of the file>: decoder for resuming mid-stream.
        """
        if not self.whatwg:
            return self.info.incrementaldecoder(errors="replace")
        if head is None:
            return BomSniffingDecoder(self.info)
        found = sniff_bom(head)
        info = codecs.lookup(found[0]) if found else self.info
        return info.incrementaldecoder(errors="replace")

    def decode(self, data: bytes) -> str:
        """Public one-shot decode of a complete byte string, BOM sniffing included."""
        return self.incremental().decode(data, True)


def _codec(name: str) -> codecs.CodecInfo:
    if name == "windows-1252":
        return _windows_1252()
    return codecs.lookup(name)


def resolve_encoding(label: str) -> Decoding:
    """
    WHATWG labels first (ASCII case-insensitive, surrounding whitespace ignored);
    other names Python knows are accepted as-is, without BOM sniffing.
    """
    key = (label or "").strip().lower()
    if not key:
        raise UnsupportedEncoding(label)
    name = LABELS.get(key)
    if name is not None:
        return Decoding(name=name, info=_codec(WHATWG_ENCODINGS[name][0]))
    try:
        info = codecs.lookup(key)
    except LookupError:
        raise UnsupportedEncoding(label) from None
    # bytes-to-bytes and str-to-str codecs (base64, rot13, hex...) are registered too
    if not getattr(info, "_is_text_encoding", True) or info.incrementaldecoder is None:
        raise UnsupportedEncoding(label)
    return Decoding(name=info.name, info=info, whatwg=False)
