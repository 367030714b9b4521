import random
from datetime import timedelta

import pytest

from megam.apis.air_quality_api import create_app
from megam.apis.air_quality_service import AirQualityService
from megam.collectors.historical_collector import HistoricalDataCollector
from megam.models import GROUND_STATION, PREMIUM_GROUND
from megam.processors.forecast_engine import ForecastEngine, StatisticalForecaster
from megam.processors.fusion_engine import FusionEngine

from conftest import FIXED_NOW, TODAY, FakeGeocoder, FakeHistory, FakeSource, daily_points, make_reading

DHAKA = {'city': 'Dhaka', 'country': 'Bangladesh', 'lat': 23.81, 'lng': 90.41,
         'display_name': 'Dhaka, Bangladesh'}


def _service(sources=None):
    points = daily_points(TODAY - timedelta(days=59), [60 + (i % 10) for i in range(60)], pm25=15.0)
    history = HistoricalDataCollector(ground_source=FakeHistory(points), today=lambda: TODAY)
    if sources is None:
        sources = [
            FakeSource('IQAir', PREMIUM_GROUND, make_reading(PREMIUM_GROUND, 'IQAir', 64, 92)),
            FakeSource('OpenAQ', GROUND_STATION, make_reading(GROUND_STATION, 'OpenAQ', 70, 95)),
        ]
    fusion = FusionEngine(sources, clock=lambda: FIXED_NOW)
    forecast = ForecastEngine(history, StatisticalForecaster(random.Random(3)), today=lambda: TODAY)
    return AirQualityService(fusion, history, forecast, FakeGeocoder({'Dhaka': DHAKA}))


@pytest.fixture
def client():
    return create_app(_service()).test_client()


def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_current_aqi(client):
    response = client.get('/api/location/aqi?lat=23.81&lng=90.41&city=Dhaka')

    body = response.get_json()
    assert response.status_code == 200
    assert body['success'] is True
    assert body['data']['index'] == 64
    assert body['data']['provenance'] == 'premium-ground'
    assert body['data']['category'] == 'Moderate'
    assert body['data']['color'] == '#FFFF00'
    assert body['location']['city'] == 'Dhaka'


@pytest.mark.parametrize('query', ['lat=23.81', 'lat=abc&lng=1', 'lat=91&lng=0'])
def test_bad_coordinates(client, query):
    response = client.get(f'/api/location/aqi?{query}')
    assert response.status_code == 400
    assert response.get_json()['success'] is False


def test_no_data_is_404():
    client = create_app(_service(sources=[FakeSource('IQAir', PREMIUM_GROUND)])).test_client()

    response = client.get('/api/location/aqi?lat=-60&lng=-140')

    assert response.status_code == 404
    assert '100km' in response.get_json()['error']


def test_history(client):
    body = client.get('/api/location/history?lat=23.81&lng=90.41&days=10').get_json()

    assert body['data']['total_points'] == 10
    assert body['data']['completeness'] == 100.0
    assert len(body['data']['points']) == 10


@pytest.mark.parametrize('kind', ['weekly', 'monthly', 'yearly', 'summary'])
def test_analytics_kinds(client, kind):
    response = client.get(f'/api/location/analytics?lat=23.81&lng=90.41&days=60&kind={kind}')

    assert response.status_code == 200
    assert response.get_json()['kind'] == kind


def test_pollutant_analytics(client):
    one = client.get('/api/location/analytics?lat=23.81&lng=90.41&days=60&kind=pollutant&pollutant=pm25')
    everything = client.get('/api/location/analytics?lat=23.81&lng=90.41&days=60&kind=pollutant')

    assert one.get_json()['data']['trend'] == 'stable'
    assert [t['pollutant'] for t in everything.get_json()['data']] == ['PM25']


def test_analytics_errors(client):
    short = client.get('/api/location/analytics?lat=23.81&lng=90.41&days=5&kind=monthly')
    unknown = client.get('/api/location/analytics?lat=23.81&lng=90.41&kind=hourly')

    assert short.status_code == 422
    assert 'Need at least 7 days' in short.get_json()['error']
    assert unknown.status_code == 400


def test_statistical_forecast(client):
    body = client.get('/api/location/forecast?lat=23.81&lng=90.41&days=3&ml=false').get_json()

    assert len(body['data']['predictions']) == 3
    assert body['data']['model_info']['is_real_ml'] is False
    assert body['data']['needs_training'] is False
    assert body['data']['current_index'] == 64
    assert len(body['data']['hourly_outlook']) == 24


def test_search(client):
    found = client.get('/api/location/search?q=Dhaka')
    missing = client.get('/api/location/search?q=Atlantis')
    empty = client.get('/api/location/search?q=')

    assert found.status_code == 200
    assert found.get_json()['data']['place']['city'] == 'Dhaka'
    assert found.get_json()['data']['reading']['city'] == 'Dhaka'
    assert missing.status_code == 404
    assert empty.status_code == 400
