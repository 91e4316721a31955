# app.py
import logging
import os
import sys

from flask import Flask, Blueprint, Response, current_app, jsonify, request

from config import Config, TestConfig
from models import db, Word, Progress
from store import WordStore, ValidationError, StorageUnavailableError
from services import (AIServiceError, analyze_image_context, analyze_word_in_context,
                      generate_speech, generate_visual_anchor, process_video_url)
from audio import pcm_to_wav

def is_testing(modules=None, environ=None):
    """判断是否在测试环境中：pytest 已加载或显式设置 TESTING=true"""
    modules = sys.modules if modules is None else modules
    environ = os.environ if environ is None else environ
    return 'pytest' in modules or environ.get('TESTING') == 'true'


TESTING = is_testing()

api = Blueprint('api', __name__, url_prefix='/api')


def get_store():
    return current_app.extensions['word_store']


def json_body():
    """请求体不是 JSON 对象时按空对象处理"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def create_app(config_object=None, overrides=None):
    app = Flask(__name__)
    app.config.from_object(config_object or (TestConfig if TESTING else Config))
    if overrides:
        app.config.update(overrides)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    with app.app_context():
        db.create_all()

    # 存储句柄随 app 创建，session 由 Flask-SQLAlchemy 按请求上下文管理
    app.extensions['word_store'] = WordStore(db.session)

    app.register_blueprint(api)
    register_error_handlers(app)
    return app


def register_error_handlers(app):

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        app.logger.info("Rejected request: %s", e.message)
        return jsonify({'error': e.message, 'field': e.field}), 400

    @app.errorhandler(StorageUnavailableError)
    def handle_storage_error(e):
        app.logger.error("Storage unavailable: %s", e)
        return jsonify({'error': 'Storage unavailable'}), 500

    @app.errorhandler(AIServiceError)
    def handle_ai_error(e):
        app.logger.error("AI service failed: %s", e)
        return jsonify({'error': 'AI service failed', 'details': str(e)}), 502


# --- 单词接口 ---

@api.route('/words', methods=['GET'])
def get_words():
    words = get_store().list_words()
    return jsonify([w.to_dict() for w in words])


@api.route('/words', methods=['POST'])
def create_word():
    payload = request.get_json(silent=True)
    word_id = get_store().create_word(payload)
    return jsonify({'id': word_id}), 201


@api.route('/words/<int:word_id>/progress', methods=['GET'])
def get_word_progress(word_id):
    progress = get_store().get_progress(word_id)
    if progress is None:
        return jsonify({'error': 'Word not found'}), 404
    return jsonify(progress.to_dict())


@api.route('/stats', methods=['GET'])
def get_stats():
    return jsonify(get_store().get_stats())


# --- AI 接口 ---

@api.route('/analyze', methods=['POST'])
def analyze_image():
    if 'file' in request.files:
        file = request.files['file']
        image = file.read()
        mime_type = file.mimetype or 'image/jpeg'
    else:
        image = json_body().get('image')
        mime_type = 'image/jpeg'
        if not isinstance(image, str) or not image.strip():
            raise ValidationError('image', 'image must be a non-empty data URI or base64 string')

    if not image:
        raise ValidationError('file', 'an image file or data URI is required')

    results = analyze_image_context(image, mime_type=mime_type)

    # 每个单词配一张图，单张失败不影响整体结果
    for item in results:
        try:
            item['image_url'] = generate_visual_anchor(item['image_prompt'])
        except AIServiceError as e:
            current_app.logger.warning("Visual anchor failed for %r: %s", item['word'], e)
            item['image_url'] = ''
    return jsonify(results)


@api.route('/analyze_word', methods=['POST'])
def analyze_word():
    data = json_body()
    word, sentence = data.get('word'), data.get('sentence')
    if not isinstance(word, str) or not word.strip():
        raise ValidationError('word', 'word is required')
    if not isinstance(sentence, str) or not sentence.strip():
        raise ValidationError('sentence', 'sentence is required')
    return jsonify(analyze_word_in_context(word.strip(), sentence.strip()))


@api.route('/speech', methods=['POST'])
def speech():
    data = json_body()
    text = data.get('text')
    accent = data.get('accent', 'US')
    if not isinstance(text, str) or not text.strip():
        raise ValidationError('text', 'text is required')
    if not isinstance(accent, str):
        raise ValidationError('accent', 'accent must be "US" or "UK"')
    try:
        pcm = generate_speech(text, accent)
    except ValueError as e:
        raise ValidationError('accent', str(e)) from e
    return Response(pcm_to_wav(pcm), mimetype='audio/wav')


@api.route('/video', methods=['POST'])
def analyze_video():
    url = json_body().get('url')
    if not isinstance(url, str) or not url.strip():
        raise ValidationError('url', 'url is required')
    return jsonify(process_video_url(url.strip()))


app = create_app()


if __name__ == '__main__':
    logging.basicConfig(
        level=getattr(logging, app.config['LOG_LEVEL'], logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    try:
        app.run(host='0.0.0.0', port=int(os.getenv('PORT', '3000')), debug=False)
    finally:
        with app.app_context():
            db.engine.dispose()
