# services.py
"""
Gemini 调用封装

直接用 requests 调 REST 接口 (models/{model}:generateContent)，
每个请求都带超时，调用方可以自己传 timeout 覆盖默认值。
"""
import base64
import json
import logging
import os
import re

import requests
from flask import current_app, has_app_context

from config import Config

logger = logging.getLogger(__name__)

API_KEY = os.getenv("GEMINI_API_KEY", Config.GEMINI_API_KEY)
BASE_URL = Config.GEMINI_BASE_URL
TEXT_MODEL = Config.TEXT_MODEL
TTS_MODEL = Config.TTS_MODEL
IMAGE_MODEL = Config.IMAGE_MODEL
DEFAULT_TIMEOUT = Config.AI_TIMEOUT

# app 配置中的键 -> 没有 app 上下文时使用的模块默认值
SETTING_DEFAULTS = {
    'GEMINI_API_KEY': 'API_KEY',
    'GEMINI_BASE_URL': 'BASE_URL',
    'TEXT_MODEL': 'TEXT_MODEL',
    'TTS_MODEL': 'TTS_MODEL',
    'IMAGE_MODEL': 'IMAGE_MODEL',
    'AI_TIMEOUT': 'DEFAULT_TIMEOUT',
}

VOICES = {'US': 'Zephyr', 'UK': 'Kore'}

ANALYSIS_FIELDS = ('word', 'meaning', 'context_explanation', 'phonetic_us', 'phonetic_uk', 'image_prompt')
SUBTITLE_FIELDS = ('time', 'text', 'translation')

IMAGE_ANALYSIS_PROMPT = (
    "Analyze this screenshot from a video. Perform OCR to find English text. "
    "Identify key vocabulary words that might be challenging. For each word, provide: "
    "1. The word itself. 2. Its precise meaning in this specific context. "
    "3. A brief explanation of why it means that here. 4. US Phonetic (KK). "
    "5. UK Phonetic (DJ). 6. A descriptive prompt for a real-world photo of this object/concept."
)

VIDEO_PROMPT = """Analyze this video URL: {url}.
Your goal is to help an English learner understand complex vocabulary and sentence structures from this video.

1. Use Google Search to find the actual content/transcript of the video if possible.
2. Select 6-8 key segments that contain challenging but useful English expressions.
3. For each segment, provide the exact English text and a high-quality Chinese translation.
4. Ensure the timestamps are realistic.

If the video cannot be found, create a highly realistic "educational simulation" of what a high-level English lesson from a video with that title/URL would contain.

Return ONLY a JSON array of objects with 'time', 'text', and 'translation' fields."""

# 视频解析失败时返回的模拟课程
FALLBACK_SUBTITLES = [
    {"time": "00:05", "text": "Welcome to this English lesson.", "translation": "欢迎来到这堂英语课。"},
    {"time": "00:12", "text": "Today we are going to talk about idioms.", "translation": "今天我们要讨论一些习语。"},
    {"time": "00:20", "text": "It's a piece of cake, really.", "translation": "这真的很简单，小菜一碟。"},
]


class AIServiceError(Exception):
    """AI 服务调用失败或返回格式不对"""


def _object_schema(fields):
    return {
        "type": "OBJECT",
        "properties": {name: {"type": "STRING"} for name in fields},
        "required": list(fields),
    }


def _array_schema(fields):
    return {"type": "ARRAY", "items": _object_schema(fields)}


def _setting(key):
    """在请求里读 app.config，脚本或单元测试里退回模块默认值"""
    if has_app_context():
        return current_app.config.get(key)
    return globals()[SETTING_DEFAULTS[key]]


def _generate_content(model_key, payload, timeout=None):
    api_key = _setting('GEMINI_API_KEY')
    model = _setting(model_key)
    if not api_key:
        raise AIServiceError("GEMINI_API_KEY is not configured")

    try:
        response = requests.post(
            f"{_setting('GEMINI_BASE_URL')}/models/{model}:generateContent",
            headers={
                "x-goog-api-key": api_key,
                "Content-Type": "application/json"
            },
            json=payload,
            timeout=timeout or _setting('AI_TIMEOUT')
        )
    except requests.RequestException as e:
        logger.error("Gemini request failed: model=%s error=%s", model, e)
        raise AIServiceError(f"request to {model} failed: {e}") from e

    if response.status_code != 200:
        logger.error("Gemini request failed: status=%s model=%s body=%s",
                     response.status_code, model, (response.text or '')[:300])
        raise AIServiceError(f"{model} returned HTTP {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        raise AIServiceError(f"{model} returned a non-JSON body") from e


def _response_parts(data):
    try:
        return data['candidates'][0]['content']['parts'] or []
    except (KeyError, IndexError, TypeError):
        return []


def _response_text(data):
    return "".join(p.get('text', '') for p in _response_parts(data) if isinstance(p, dict))


def _inline_data(data):
    for part in _response_parts(data):
        if isinstance(part, dict) and 'inlineData' in part:
            return part['inlineData']
    return None


def _parse_json(content, pattern):
    """解析模型返回的 JSON，清理可能存在的 markdown 代码块"""
    content = (content or '').replace('```json', '').replace('```', '').strip()
    if not content:
        raise AIServiceError("AI returned empty content")

    # 有时候模型会在 JSON 前后附带文字
    match = re.search(pattern, content, re.DOTALL)
    if match:
        content = match.group()

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        logger.warning("Could not parse AI JSON: %s", content[:200])
        raise AIServiceError("AI returned malformed JSON") from e


def _check_fields(item, fields):
    if not isinstance(item, dict) or any(not isinstance(item.get(f), str) for f in fields):
        raise AIServiceError(f"AI response item is missing fields: {item!r}")
    return {f: item[f] for f in fields}


def _split_image(image, mime_type):
    """bytes / base64 / data URI -> (mime_type, base64 字符串)"""
    if isinstance(image, bytes):
        return mime_type, base64.b64encode(image).decode('ascii')
    if image.startswith('data:') and ',' in image:
        header, data = image.split(',', 1)
        return header[5:].split(';')[0] or mime_type, data
    return mime_type, image


def analyze_image_context(image, mime_type="image/jpeg", timeout=None):
    """截图 OCR + 生词分析，返回 [{word, meaning, context_explanation, ...}]"""
    mime_type, data = _split_image(image, mime_type)
    payload = {
        "contents": [{
            "parts": [
                {"inlineData": {"mimeType": mime_type, "data": data}},
                {"text": IMAGE_ANALYSIS_PROMPT},
            ]
        }],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": _array_schema(ANALYSIS_FIELDS),
        },
    }
    result = _parse_json(_response_text(_generate_content('TEXT_MODEL', payload, timeout)), r'\[.*\]')
    if not isinstance(result, list):
        raise AIServiceError("AI returned a non-list image analysis")
    return [_check_fields(item, ANALYSIS_FIELDS) for item in result]


def analyze_word_in_context(word, sentence, timeout=None):
    payload = {
        "contents": [{
            "parts": [{
                "text": (f'Analyze the word "{word}" in the context of this sentence: "{sentence}".\n'
                         "Provide a precise meaning for this specific context, a brief explanation, "
                         "phonetics, and an image prompt.")
            }]
        }],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": _object_schema(ANALYSIS_FIELDS),
        },
    }
    result = _parse_json(_response_text(_generate_content('TEXT_MODEL', payload, timeout)), r'\{.*\}')
    return _check_fields(result, ANALYSIS_FIELDS)


def generate_speech(text, accent='US', timeout=None):
    """文本转语音，返回裸 PCM 字节 (24kHz/16-bit/mono)，由调用方封装成 WAV"""
    if accent not in VOICES:
        raise ValueError(f"accent must be one of {sorted(VOICES)}")

    payload = {
        "contents": [{"parts": [{"text": text}]}],
        "generationConfig": {
            "responseModalities": ["AUDIO"],
            "speechConfig": {
                "voiceConfig": {
                    "prebuiltVoiceConfig": {"voiceName": VOICES[accent]}
                }
            }
        },
    }
    inline = _inline_data(_generate_content('TTS_MODEL', payload, timeout))
    if not inline or not inline.get('data'):
        raise AIServiceError("speech response contained no audio")
    return base64.b64decode(inline['data'])


def generate_visual_anchor(prompt, timeout=None):
    """为单词生成一张写实配图，返回 data URI；模型没给图时返回空字符串"""
    payload = {
        "contents": [{
            "parts": [{
                "text": (f"A high-quality, realistic photo of: {prompt}. "
                         "Real-world photography style, no text, no cartoons.")
            }]
        }]
    }
    inline = _inline_data(_generate_content('IMAGE_MODEL', payload, timeout))
    if not inline or not inline.get('data'):
        return ""
    return f"data:image/png;base64,{inline['data']}"


def process_video_url(url, timeout=None):
    """视频链接 -> 字幕片段 [{time, text, translation}]

    模型不一定能访问该链接，失败时返回模拟课程内容而不是报错。
    """
    payload = {
        "contents": [{"parts": [{"text": VIDEO_PROMPT.format(url=url)}]}],
        "tools": [{"google_search": {}}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": _array_schema(SUBTITLE_FIELDS),
        },
    }
    try:
        result = _parse_json(_response_text(_generate_content('TEXT_MODEL', payload, timeout)), r'\[.*\]')
        if not isinstance(result, list):
            raise AIServiceError("AI returned non-list subtitles")
        return [_check_fields(item, SUBTITLE_FIELDS) for item in result]
    except AIServiceError as e:
        logger.warning("Video analysis failed for %s, using simulated lesson: %s", url, e)
        return [dict(seg) for seg in FALLBACK_SUBTITLES]
