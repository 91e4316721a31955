# store.py
"""
单词与复习进度的持久化

WordStore 持有一个数据库 session，由 create_app 创建并挂在 app.extensions 上，
路由通过 get_store() 取用，不再直接共享全局连接。
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import Word, Progress, STATUS_NEW, utcnow

logger = logging.getLogger(__name__)

REQUIRED_FIELD = 'word'
OPTIONAL_FIELDS = ('context_sentence', 'meaning', 'phonetic_us', 'phonetic_uk', 'image_url')

# AI 返回的字段名 -> 存储字段名
FIELD_ALIASES = {'context_explanation': 'context_sentence'}


class StoreError(Exception):
    """存储层错误基类"""


class ValidationError(StoreError):
    def __init__(self, field, message):
        super().__init__(message)
        self.field = field
        self.message = message


class StorageUnavailableError(StoreError):
    pass


def _check_encodable(field, value):
    # 孤立代理字符 (如 "\ud800") 无法写入数据库
    try:
        value.encode('utf-8')
    except UnicodeEncodeError:
        raise ValidationError(field, f'{field} contains characters that are not valid UTF-8') from None


def clean_word_payload(payload):
    """校验并整理创建单词的请求体，返回可直接传给 Word(**fields) 的字典"""
    if not isinstance(payload, dict):
        raise ValidationError(None, 'payload must be a JSON object')

    surface = payload.get(REQUIRED_FIELD)
    if not isinstance(surface, str) or not surface.strip():
        raise ValidationError(REQUIRED_FIELD, 'word is required and must be a non-empty string')
    _check_encodable(REQUIRED_FIELD, surface)

    fields = {REQUIRED_FIELD: surface.strip()}
    for alias, name in FIELD_ALIASES.items():
        if payload.get(name) is None and payload.get(alias) is not None:
            payload = dict(payload, **{name: payload[alias]})

    for name in OPTIONAL_FIELDS:
        value = payload.get(name)
        if value is not None and not isinstance(value, str):
            raise ValidationError(name, f'{name} must be a string or null')
        if value is not None:
            _check_encodable(name, value)
        fields[name] = value
    return fields


class WordStore:

    def __init__(self, session):
        self.session = session

    def list_words(self):
        """所有单词，最新的在前"""
        try:
            return (self.session.query(Word)
                    .order_by(Word.created_at.desc(), Word.id.desc())
                    .all())
        except SQLAlchemyError as e:
            self._fail('list words', e)

    def create_word(self, payload):
        """插入单词和它的 Progress，两者在同一个事务里，返回新单词 id"""
        fields = clean_word_payload(payload)
        now = utcnow()

        try:
            word = Word(created_at=now, **fields)
            self.session.add(word)
            self.session.flush()  # 获取生成的 ID

            self.session.add(Progress(word_id=word.id, status=STATUS_NEW, next_review=now))
            self.session.commit()
        except SQLAlchemyError as e:
            self._fail('create word', e)

        logger.info("Saved word %r as id=%s", word.word, word.id)
        return word.id

    def get_stats(self):
        try:
            total = self.session.query(func.count(Word.id)).scalar()
        except SQLAlchemyError as e:
            self._fail('count words', e)
        return {'totalWords': total}

    def get_progress(self, word_id):
        try:
            return self.session.query(Progress).filter_by(word_id=word_id).first()
        except SQLAlchemyError as e:
            self._fail('load progress', e)

    def _fail(self, action, error):
        self.session.rollback()
        logger.error("Storage error during %s: %s", action, error)
        raise StorageUnavailableError(f'storage unavailable: {action} failed') from error
