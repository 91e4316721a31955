"""
完整用户流程测试
测试：截图分析 -> 保存单词 -> 单词列表 -> 统计
"""
import pytest
import allure
from unittest.mock import patch

from app import app, db, Progress


@allure.epic("端到端测试")
@allure.feature("完整流程")
@pytest.mark.e2e
@pytest.mark.integration
class TestCompleteFlow:

    @allure.title("保存 ubiquitous 后统计与列表一致")
    def test_save_single_word(self, test_client):
        """TC_FLOW_001: 保存一个单词"""
        payload = {
            'word': 'ubiquitous',
            'meaning': 'present everywhere',
            'phonetic_us': '/juːˈbɪkwɪtəs/',
        }

        with allure.step("保存单词"):
            response = test_client.post('/api/words', json=payload)
            assert response.get_json() == {'id': 1}

        with allure.step("统计"):
            assert test_client.get('/api/stats').get_json() == {'totalWords': 1}

        with allure.step("列表"):
            words = test_client.get('/api/words').get_json()
            assert len(words) == 1
            word = words[0]
            assert word['id'] == 1
            assert word['created_at']
            for key, value in payload.items():
                assert word[key] == value

    @allure.title("截图分析后挑选单词保存")
    def test_scan_then_save(self, test_client):
        """TC_FLOW_002: 截图 -> 选词 -> 保存"""
        analysis = [{
            'word': 'meticulous',
            'meaning': 'very careful about details',
            'context_explanation': 'The chef arranges each plate precisely.',
            'phonetic_us': '/məˈtɪkjələs/',
            'phonetic_uk': '/məˈtɪkjʊləs/',
            'image_prompt': 'a chef carefully plating food',
        }]

        with patch('app.analyze_image_context') as mock_analyze, \
                patch('app.generate_visual_anchor') as mock_anchor:
            mock_analyze.return_value = analysis
            mock_anchor.return_value = 'data:image/png;base64,CHEF'
            scanned = test_client.post('/api/analyze', json={'image': 'data:image/jpeg;base64,AAAA'}).get_json()

        # 客户端把 AI 结果原样提交，context_explanation 存为 context_sentence
        selected = scanned[0]
        response = test_client.post('/api/words', json=selected)
        assert response.status_code == 201
        word_id = response.get_json()['id']

        saved = test_client.get('/api/words').get_json()[0]
        assert saved['id'] == word_id
        assert saved['context_sentence'] == 'The chef arranges each plate precisely.'
        assert saved['image_url'] == 'data:image/png;base64,CHEF'

        progress = test_client.get(f'/api/words/{word_id}/progress').get_json()
        assert progress['status'] == 'new'
        assert progress['next_review'] == saved['created_at']

    @allure.title("多次保存后每个单词都有一条进度")
    def test_every_word_has_progress(self, test_client):
        """TC_FLOW_003: 数据一致性"""
        for w in ('a', 'b', 'c', 'b'):
            test_client.post('/api/words', json={'word': w})

        words = test_client.get('/api/words').get_json()
        assert test_client.get('/api/stats').get_json()['totalWords'] == len(words) == 4

        with app.app_context():
            for item in words:
                rows = db.session.query(Progress).filter_by(word_id=item['id']).all()
                assert len(rows) == 1
                assert rows[0].status == 'new'
