"""
API routes for the book sync service.
"""

from flask import Blueprint, current_app, jsonify, request

from booksync.sync.triggers import AuthSession

api_bp = Blueprint('api', __name__, url_prefix='/api')


def _services():
    return current_app.config['SERVICES']


@api_bp.route('/status')
def status():
    """Get current sync state."""
    return jsonify(_services().controller.snapshot())


@api_bp.route('/sync', methods=['POST'])
def trigger_sync():
    """Trigger an incremental sync."""
    result = _services().controller.trigger_sync()
    return jsonify({
        'triggered': result is not None,
        'result': result.to_dict() if result else None,
    })


@api_bp.route('/sync/full', methods=['POST'])
def trigger_full_sync():
    """Trigger a full sync."""
    result = _services().controller.trigger_full_sync()
    return jsonify({
        'triggered': result is not None,
        'result': result.to_dict() if result else None,
    })


@api_bp.route('/auth', methods=['POST'])
def sign_in():
    """Report a signed-in identity."""
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    access_token = data.get('access_token')

    if not user_id or not access_token:
        return jsonify({'error': 'user_id and access_token are required'}), 400

    _services().triggers.auth.emit(AuthSession(user_id=user_id, access_token=access_token))
    return jsonify(_services().controller.snapshot())


@api_bp.route('/auth', methods=['DELETE'])
def sign_out():
    """Report that the user signed out."""
    _services().triggers.auth.emit(None)
    return jsonify(_services().controller.snapshot())


@api_bp.route('/events/network', methods=['POST'])
def network_event():
    """Report a connectivity change."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get('online'), bool):
        return jsonify({'error': 'online must be a boolean'}), 400

    _services().triggers.network.emit(data['online'])
    return jsonify(_services().controller.snapshot())


@api_bp.route('/events/foreground', methods=['POST'])
def foreground_event():
    """Report that the app came to the foreground."""
    _services().triggers.foreground.emit()
    return jsonify(_services().controller.snapshot())


@api_bp.route('/books')
def list_books():
    """Get the cached collection."""
    return jsonify([book.to_dict() for book in _services().collection.books])


@api_bp.route('/books', methods=['POST'])
def add_book():
    """Register a book."""
    data = request.get_json(silent=True) or {}
    title = data.pop('title', None)
    if not title:
        return jsonify({'error': 'title is required'}), 400

    try:
        book = _services().collection.add_book(title, **data)
    except (TypeError, ValueError) as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(book.to_dict()), 201


@api_bp.route('/books/<book_id>', methods=['PATCH'])
def update_book(book_id):
    """Edit a book."""
    data = request.get_json(silent=True) or {}

    try:
        book = _services().collection.update_book(book_id, **data)
    except KeyError:
        return jsonify({'error': 'Book not found'}), 404
    except (TypeError, ValueError) as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(book.to_dict())


@api_bp.route('/books/<book_id>/status', methods=['PUT'])
def update_status(book_id):
    """Change the reading status of a book."""
    data = request.get_json(silent=True) or {}

    try:
        book = _services().collection.update_status(book_id, data.get('status'))
    except KeyError:
        return jsonify({'error': 'Book not found'}), 404
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify(book.to_dict())


@api_bp.route('/books/<book_id>', methods=['DELETE'])
def delete_book(book_id):
    """Delete a book."""
    collection = _services().collection
    if collection.store.get(book_id) is None:
        return jsonify({'error': 'Book not found'}), 404

    collection.delete_book(book_id)
    return '', 204


@api_bp.route('/runs')
def get_runs():
    """Get sync runs."""
    limit = request.args.get('limit', 20, type=int)
    return jsonify(_services().store.get_sync_runs(limit))
