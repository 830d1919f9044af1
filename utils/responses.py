from flask import jsonify


def ok(data=None, status: int = 200):
    return jsonify(ok=True, data=data), status


def error(code: str, message: str, status: int):
    return jsonify(ok=False, error=code, message=message), status
