from flask import Blueprint, jsonify
from brainplay.services.quiz.realtime import hub

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Brain Play quiz server!'})

@main.route('/health')
def health():
    return jsonify({'status': 'ok', 'live_games': len(hub.active_pins())})
