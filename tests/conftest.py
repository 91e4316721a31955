"""
tests/conftest.py
共享 fixture：每个测试一个干净的内存数据库
"""
import pytest
import os

# ========== 关键：在导入app之前设置环境变量 ==========
os.environ['TESTING'] = 'true'

# ========== 导入app ==========
from app import app, db, Word, Progress
from store import WordStore


@pytest.fixture(autouse=True)
def clean_database():
    """
    每个测试前重建表，AUTOINCREMENT 计数也随之清零
    """
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield
    with app.app_context():
        db.session.remove()


@pytest.fixture
def test_client():
    with app.test_client() as client:
        yield client


@pytest.fixture
def store():
    """直接操作存储层的 WordStore"""
    with app.app_context():
        yield WordStore(db.session)
        db.session.remove()


@pytest.fixture
def sample_payload():
    return {
        'word': 'ubiquitous',
        'context_sentence': 'Smartphones have become ubiquitous in modern life.',
        'meaning': 'present everywhere',
        'phonetic_us': '/juːˈbɪkwɪtəs/',
        'phonetic_uk': '/juːˈbɪkwɪtəs/',
        'image_url': 'https://example.com/phones.png',
    }


# ========== 注册pytest标记 ==========

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: 标记为单元测试")
    config.addinivalue_line("markers", "integration: 标记为集成测试")
    config.addinivalue_line("markers", "e2e: 标记为端到端测试")
