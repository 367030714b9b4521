#!/usr/bin/env python3
"""
🌐 AIR QUALITY HTTP API
======================
Thin Flask layer over AirQualityService.

Endpoints:
- GET /api/health (health check)
- GET /api/location/aqi?lat&lng&city (current fused reading)
- GET /api/location/history?lat&lng&days (gap-filled daily series)
- GET /api/location/analytics?lat&lng&days&kind=weekly|monthly|yearly|summary|pollutant&pollutant=
- GET /api/location/forecast?lat&lng&days&ml=true|false
- GET /api/location/search?q= (geocode, then current reading)

Errors: {"success": false, "error": ...} with 400 for bad parameters,
404 when no data exists, 422 when the history is too short.
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS

from megam.apis.air_quality_service import AirQualityService, create_default_service
from megam.exceptions import InsufficientHistory, NoDataAvailable, ProviderUnavailable
from megam.processors.aqi_calculator import describe_index
from megam.utils.config import get_settings

logger = logging.getLogger(__name__)

ANALYTICS_KINDS = ('weekly', 'monthly', 'yearly', 'summary', 'pollutant')
DEFAULT_HISTORY_DAYS = 30
DEFAULT_ANALYTICS_DAYS = 365
DEFAULT_FORECAST_DAYS = 7


def _coordinates(args: Dict[str, str]) -> Tuple[float, float]:
    if 'lat' not in args or 'lng' not in args:
        raise ValueError("Valid coordinates required (lat, lng)")

    lat = float(args['lat'])
    lng = float(args['lng'])
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise ValueError(f"Coordinates out of range: {lat}, {lng}")
    return lat, lng


def _days(args: Dict[str, str], default: int) -> int:
    days = int(args.get('days', default))
    if days < 1:
        raise ValueError(f"days must be positive, got {days}")
    return days


def _failure(error: Exception):
    if isinstance(error, (NoDataAvailable, ProviderUnavailable)):
        status = 404
    elif isinstance(error, InsufficientHistory):
        status = 422
    elif isinstance(error, (ValueError, KeyError)):
        status = 400
    else:
        logger.error(f"❌ Unexpected API error: {error}")
        status = 500

    return jsonify({
        'success': False,
        'error': str(error),
        'timestamp': datetime.now().isoformat()
    }), status


def _success(data, **extra):
    body = {'success': True, 'data': data, 'timestamp': datetime.now().isoformat()}
    body.update(extra)
    return jsonify(body)


def create_app(service: Optional[AirQualityService] = None) -> Flask:
    """Build the Flask app; the default service is wired from settings"""
    app = Flask(__name__)
    CORS(app, origins=['*'])
    service = service or create_default_service()

    @app.route('/api/health', methods=['GET'])
    def health_check():
        return jsonify({
            'success': True,
            'status': 'healthy',
            'service': 'megam air quality',
            'timestamp': datetime.now().isoformat()
        })

    @app.route('/api/location/aqi', methods=['GET'])
    def get_current_aqi():
        """Current fused reading for a coordinate"""
        try:
            data = request.args.to_dict()
            lat, lng = _coordinates(data)
            reading = service.get_current_reading(lat, lng, data.get('city') or None)

            described = describe_index(reading.index)
            payload = reading.to_dict()
            payload['category'] = described['category']
            payload['color'] = described['color']
            return _success(payload, location={'lat': lat, 'lng': lng, 'city': reading.city})

        except Exception as e:
            return _failure(e)

    @app.route('/api/location/history', methods=['GET'])
    def get_history():
        try:
            data = request.args.to_dict()
            lat, lng = _coordinates(data)
            dataset = service.get_historical_dataset(lat, lng, _days(data, DEFAULT_HISTORY_DAYS))
            return _success(dataset.to_dict())

        except Exception as e:
            return _failure(e)

    @app.route('/api/location/analytics', methods=['GET'])
    def get_analytics():
        try:
            data = request.args.to_dict()
            lat, lng = _coordinates(data)
            kind = data.get('kind', 'summary')
            if kind not in ANALYTICS_KINDS:
                raise ValueError(f"Unknown analytics kind '{kind}', expected one of {', '.join(ANALYTICS_KINDS)}")

            dataset = service.get_historical_dataset(lat, lng, _days(data, DEFAULT_ANALYTICS_DAYS))

            if kind == 'weekly':
                result = [day.to_dict() for day in service.get_weekly_analysis(dataset)]
            elif kind == 'monthly':
                result = [month.to_dict() for month in service.get_monthly_analysis(dataset)]
            elif kind == 'yearly':
                result = [year.to_dict() for year in service.get_yearly_analysis(dataset)]
            elif kind == 'pollutant':
                trend = service.get_pollutant_trend(dataset, data.get('pollutant') or None)
                if isinstance(trend, list):
                    result = [t.to_dict() for t in trend]
                else:
                    result = trend.to_dict() if trend is not None else None
            else:
                result = service.get_quick_summary(dataset).to_dict()

            return _success(result, kind=kind, completeness=dataset.completeness)

        except Exception as e:
            return _failure(e)

    @app.route('/api/location/forecast', methods=['GET'])
    def get_forecast():
        try:
            data = request.args.to_dict()
            lat, lng = _coordinates(data)
            days = _days(data, DEFAULT_FORECAST_DAYS)
            use_trained_model = data.get('ml', 'true').lower() != 'false'

            current = service.get_current_reading(lat, lng, data.get('city') or None)
            result = service.get_forecast(lat, lng, current, days, use_trained_model)

            payload = result.to_dict()
            payload['hourly_outlook'] = service.get_hourly_outlook(current)
            return _success(payload, location={'lat': lat, 'lng': lng, 'city': current.city})

        except Exception as e:
            return _failure(e)

    @app.route('/api/location/search', methods=['GET'])
    def search_location():
        try:
            query = request.args.get('q', '').strip()
            if not query:
                return jsonify({'success': False, 'error': 'Search query required (q)'}), 400

            found = service.search_location(query)
            return _success({'place': found['place'], 'reading': found['reading'].to_dict()})

        except Exception as e:
            return _failure(e)

    return app


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    for noisy in ('urllib3', 'botocore', 'boto3', 'tensorflow'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    settings = get_settings()
    app = create_app(create_default_service(settings))

    logger.info(f"🚀 Starting air quality API at http://{settings.api_host}:{settings.api_port}")
    app.run(host=settings.api_host, port=settings.api_port, debug=settings.api_debug)


if __name__ == '__main__':
    main()
