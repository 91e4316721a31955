# audio.py
import io
import wave

# Gemini TTS 输出: 24kHz, 16-bit, 单声道 PCM
SAMPLE_RATE = 24000
CHANNELS = 1
SAMPLE_WIDTH = 2


def pcm_to_wav(pcm_bytes, sample_rate=SAMPLE_RATE, channels=CHANNELS, sample_width=SAMPLE_WIDTH):
    """给裸 PCM 数据加上 WAV 头，浏览器才能直接播放"""
    buf = io.BytesIO()
    with wave.open(buf, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm_bytes)
    return buf.getvalue()
