from flask import Blueprint, current_app, g, jsonify, request

from auth import token_optional, token_required
from errors import ValidationError
from firestore_handler import (
    ANSWER_OPTIONS,
    get_community_games,
    get_game_play,
    get_playable_game,
    get_random_unplayed_game,
    verify_answer_and_record_play,
)
from game_creator import create_game_round
from image_generator import generate_initial_image, generate_modified_image, plan_differences
from quota_handler import check_app_quota, check_user_quota
from services import generation_limit, get_bucket, get_db, limiter, user_api_key

# Create a Blueprint for game-related routes
game_bp = Blueprint('game_bp', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# --- Creation flow ---

@game_bp.route('/generate_scene', methods=['POST'])
@token_required
@limiter.limit(generation_limit)
def generate_scene_route(current_user_id):
    prompt = _json_body().get('prompt', '')
    image = generate_initial_image(prompt, api_key=user_api_key())
    return jsonify({"prompt": prompt, "image": image}), 200


@game_bp.route('/plan_differences', methods=['POST'])
@token_required
@limiter.limit(generation_limit)
def plan_differences_route(current_user_id):
    data = _json_body()
    differences = plan_differences(data.get('prompt', ''), data.get('count', 5), api_key=user_api_key())
    return jsonify({"differences": differences, "answerOptions": ANSWER_OPTIONS}), 200


@game_bp.route('/generate_modified_image', methods=['POST'])
@token_required
@limiter.limit(generation_limit)
def generate_modified_image_route(current_user_id):
    data = _json_body()
    image = generate_modified_image(data.get('originalImage'), data.get('differences'), api_key=user_api_key())
    return jsonify({"image": image}), 200


@game_bp.route('/quota', methods=['GET'])
@token_required
def quota_route(current_user_id):
    db = get_db()
    return jsonify({
        "success": True,
        "userQuota": check_user_quota(db, current_user_id),
        "appQuota": check_app_quota(db),
    }), 200


@game_bp.route('/check_app_quota', methods=['GET'])
def check_app_quota_route():
    return jsonify({"success": True, "appQuota": check_app_quota(get_db())}), 200


@game_bp.route('/create_game', methods=['POST'])
@token_required
def create_game_route(current_user_id):
    data = _json_body()
    game_id = create_game_round(
        get_db(),
        get_bucket(),
        creator_id=current_user_id,
        creator_name=g.user_name,
        prompt=data.get('prompt'),
        original_image=data.get('originalImage'),
        modified_image=data.get('modifiedImage'),
        differences=data.get('differences'),
        is_public=data.get('isPublic', True),
    )
    current_app.logger.info(f"User {current_user_id} created game {game_id}")
    return jsonify({"success": True, "gameId": game_id}), 201


# --- Play flow ---

@game_bp.route('/community_games', methods=['GET'])
def community_games_route():
    return jsonify({"games": get_community_games(get_db())}), 200


@game_bp.route('/random_game', methods=['GET'])
@token_required
def random_game_route(current_user_id):
    return jsonify(get_random_unplayed_game(get_db(), current_user_id)), 200


@game_bp.route('/game/<game_id>', methods=['GET'])
@token_optional
def game_route(current_user_id, game_id):
    return jsonify(get_playable_game(get_db(), game_id, current_user_id)), 200


@game_bp.route('/game_play/<game_id>', methods=['GET'])
@token_required
def game_play_route(current_user_id, game_id):
    return jsonify({"gamePlay": get_game_play(get_db(), game_id, current_user_id)}), 200


@game_bp.route('/verify_answer', methods=['POST'])
@token_required
def verify_answer_route(current_user_id):
    data = _json_body()
    result = verify_answer_and_record_play(
        get_db(),
        game_id=data.get('gameId'),
        player_id=current_user_id,
        player_name=g.user_name,
        selected_answer=data.get('selectedAnswer'),
    )
    return jsonify(result), 200
