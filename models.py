# models.py
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# 复习状态: 目前只会写入 new
STATUS_NEW = 'new'
STATUS_LEARNING = 'learning'
STATUS_MASTERED = 'mastered'
PROGRESS_STATUSES = (STATUS_NEW, STATUS_LEARNING, STATUS_MASTERED)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


def utcnow():
    """当前 UTC 时间（naive），SQLite 不保存时区"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value):
    return value.strftime(TIMESTAMP_FORMAT) if value else None


class Word(db.Model):
    __tablename__ = 'words'
    # AUTOINCREMENT: 删除行后 id 也不会被复用
    __table_args__ = {'sqlite_autoincrement': True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    word = db.Column(db.Text, nullable=False)
    context_sentence = db.Column(db.Text, nullable=True)
    meaning = db.Column(db.Text, nullable=True)
    phonetic_us = db.Column(db.Text, nullable=True)
    phonetic_uk = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    progress = db.relationship('Progress', back_populates='word', uselist=False)

    def to_dict(self):
        return {
            'id': self.id,
            'word': self.word,
            'context_sentence': self.context_sentence,
            'meaning': self.meaning,
            'phonetic_us': self.phonetic_us,
            'phonetic_uk': self.phonetic_uk,
            'image_url': self.image_url,
            'created_at': format_timestamp(self.created_at)
        }


class Progress(db.Model):
    __tablename__ = 'progress'
    __table_args__ = {'sqlite_autoincrement': True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    word_id = db.Column(db.Integer, db.ForeignKey('words.id'), nullable=False, unique=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_NEW)
    last_reviewed = db.Column(db.DateTime, nullable=True)
    # 预留给间隔重复调度，创建时写入，目前没有任何逻辑读取或推进它
    next_review = db.Column(db.DateTime, nullable=True)

    word = db.relationship('Word', back_populates='progress')

    def to_dict(self):
        return {
            'id': self.id,
            'word_id': self.word_id,
            'status': self.status,
            'last_reviewed': format_timestamp(self.last_reviewed),
            'next_review': format_timestamp(self.next_review)
        }
