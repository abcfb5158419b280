"""HTTP adapter exposing forecasts and dependency management."""

from flask import Flask, jsonify, request
from flask_cors import CORS
from typing import Any, Dict, Optional

from .engine import ForecastEngine
from .errors import (
    CycleDetectedError, DuplicateEdgeError, ForecastError,
    InvalidParameterError, NotFoundError,
)
from .utils import logger

ERROR_STATUS = {
    InvalidParameterError: 400,
    NotFoundError: 404,
    DuplicateEdgeError: 409,
    CycleDetectedError: 409,
}


def _status_for(error: ForecastError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 400


def _window_arg() -> Optional[int]:
    value = request.args.get('windowWeeks')
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidParameterError(f"windowWeeks must be an integer, got {value!r}")


class ForecastWebServer:
    """Flask application serving the forecasting engine as JSON."""

    def __init__(self, engine: ForecastEngine, host: str = "127.0.0.1", port: int = 5000):
        """Initialize the web server.

        Args:
            engine: Forecast engine answering every request
            host: Host address to bind to
            port: Port to listen on
        """
        self.app = Flask(__name__)
        CORS(self.app)
        self.engine = engine
        self.host = host
        self.port = port

        self._setup_error_handlers()
        self._setup_routes()

    def _setup_error_handlers(self):
        @self.app.errorhandler(ForecastError)
        def handle_forecast_error(error):
            status = _status_for(error)
            body: Dict[str, Any] = {"error": str(error)}
            if isinstance(error, CycleDetectedError):
                body["path"] = error.path
            logger.debug(f"{request.method} {request.path} -> {status}: {error}")
            return jsonify(body), status

    def _setup_routes(self):
        """Set up Flask routes."""
        engine = self.engine

        @self.app.route('/api/forecasts/throughput')
        def all_throughput():
            rates = engine.all_teams_throughput(_window_arg())
            return jsonify({"teams": rates, "unit": "items per week"})

        @self.app.route('/api/forecasts/throughput/<team_id>')
        def team_throughput(team_id):
            return jsonify(engine.team_throughput(team_id, _window_arg()).to_dict())

        @self.app.route('/api/forecasts/queue/<team_id>')
        def team_queue(team_id):
            return jsonify(engine.team_queue(team_id).to_dict())

        @self.app.route('/api/forecasts/load/<team_id>')
        def team_load(team_id):
            return jsonify(engine.team_load(team_id).to_dict())

        @self.app.route('/api/forecasts/work-item/<item_id>')
        def work_item(item_id):
            team_id = request.args.get('teamId')
            if not team_id:
                raise InvalidParameterError("teamId query parameter is required")
            forecast = engine.forecast_item(item_id, team_id, request.args.get('asOf'))
            return jsonify(forecast.to_dict())

        @self.app.route('/api/forecasts/backlog/<team_id>')
        def backlog(team_id):
            forecasts = engine.forecast_backlog(team_id, request.args.get('asOf'))
            return jsonify({
                "teamId": team_id,
                "items": [f.to_dict() for f in forecasts],
            })

        @self.app.route('/api/forecasts/target/<team_id>')
        def target(team_id):
            target_date = request.args.get('targetDate')
            if not target_date:
                raise InvalidParameterError("targetDate query parameter is required")
            result = engine.target_requirements(team_id, target_date, request.args.get('asOf'))
            return jsonify(result.to_dict())

        @self.app.route('/api/forecasts/project/<project_id>')
        def project(project_id):
            forecast = engine.forecast_project(project_id, request.args.get('asOf'))
            return jsonify(forecast.to_dict())

        @self.app.route('/api/dependencies', methods=['GET'])
        def list_dependencies():
            return jsonify([d.to_dict() for d in engine.graph.all_dependencies()])

        @self.app.route('/api/dependencies', methods=['POST'])
        def create_dependency():
            data = request.get_json(silent=True) or {}
            predecessor_id = data.get('predecessorId')
            successor_id = data.get('successorId')
            if not predecessor_id or not successor_id:
                raise InvalidParameterError("predecessorId and successorId are required")

            dependency = engine.add_dependency(
                predecessor_id, successor_id, data.get('type', 'FS')
            )
            return jsonify(dependency.to_dict()), 201

        @self.app.route('/api/dependencies/<edge_id>', methods=['DELETE'])
        def delete_dependency(edge_id):
            engine.remove_dependency(edge_id)
            return jsonify({"message": "Dependency deleted successfully"})

        @self.app.route('/api/dependencies/objective/<objective_id>')
        def objective_dependencies(objective_id):
            dependencies = engine.graph.dependencies_for_objective(objective_id)
            return jsonify({
                "objectiveId": objective_id,
                "predecessors": [
                    d.to_dict() for d in dependencies if d.successor_id == objective_id
                ],
                "successors": [
                    d.to_dict() for d in dependencies if d.predecessor_id == objective_id
                ],
            })

        @self.app.route('/api/dependencies/project/<project_id>')
        def project_dependencies(project_id):
            dependencies = engine.graph.dependencies_for_project(project_id)
            return jsonify([d.to_dict() for d in dependencies])

        @self.app.route('/api/dependencies/can-release/<objective_id>')
        def can_release(objective_id):
            return jsonify(engine.can_release(objective_id).to_dict())

    def run(self, debug: bool = False):
        """Run the web server."""
        self.app.run(host=self.host, port=self.port, debug=debug)


def create_app(engine: ForecastEngine) -> Flask:
    """Build the Flask application for an engine."""
    return ForecastWebServer(engine).app
