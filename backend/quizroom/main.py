import os

from flask import Blueprint, current_app, jsonify, send_from_directory

main = Blueprint('main', __name__)

@main.route('/')
def index():
    static_dir = current_app.static_folder
    if static_dir and os.path.isfile(os.path.join(static_dir, 'index.html')):
        return send_from_directory(static_dir, 'index.html')
    return jsonify({'message': 'Welcome to the quizroom server!'})

@main.route('/health')
def health():
    return jsonify({'status': 'healthy'})
