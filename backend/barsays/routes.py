from flask import Blueprint, jsonify
from barsays.services.game import rooms

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Bar Says game server!'})

@main.route('/health')
def health():
    return jsonify({'status': 'ok', 'rooms': len(rooms)})
