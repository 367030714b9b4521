from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from megam.collectors.geocoding import NominatimGeocoder
from megam.collectors.iqair_collector import IQAirCollector
from megam.collectors.nasa_power_collector import NASAPowerCollector
from megam.collectors.openaq_collector import (
    OpenAQCollector, bounding_box, daily_points_from_measurements, station_confidence
)
from megam.collectors.waqi_collector import WAQICollector
from megam.exceptions import ProviderUnavailable
from megam.models import AGGREGATOR, GROUND_STATION, PREMIUM_GROUND, SATELLITE

from conftest import TODAY

REQUESTS_GET = 'megam.collectors.base.requests.get'


def _response(payload, status=200):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.json.return_value = payload
    return response


class TestIQAir:

    PAYLOAD = {
        'status': 'success',
        'data': {
            'city': 'Dhaka', 'state': 'Dhaka', 'country': 'Bangladesh',
            'current': {
                'pollution': {'aqius': 152, 'mainus': 'p2'},
                'weather': {'tp': 28, 'hu': 70, 'pr': 1008, 'ws': 2.1, 'wd': 180},
            },
        },
    }

    def test_reading_with_weather(self):
        with patch(REQUESTS_GET, return_value=_response(self.PAYLOAD)) as get:
            reading = IQAirCollector('key').fetch_current(23.81, 90.41)

        assert get.call_args.kwargs['params']['lon'] == 90.41
        assert reading.kind == PREMIUM_GROUND
        assert reading.index == 152
        assert reading.confidence == 92
        assert reading.city == 'Dhaka'
        assert reading.weather.temperature == 28
        assert reading.weather.wind_direction == 180
        assert reading.pollutants[0].name == 'PM2.5'

    def test_missing_key(self):
        with pytest.raises(ProviderUnavailable):
            IQAirCollector(None).fetch_current(1.0, 2.0)

    def test_error_status(self):
        with patch(REQUESTS_GET, return_value=_response({'status': 'fail', 'data': {}})):
            with pytest.raises(ProviderUnavailable):
                IQAirCollector('key').fetch_current(1.0, 2.0)

    def test_rate_limit_and_network_errors(self):
        with patch(REQUESTS_GET, return_value=_response({}, status=429)):
            with pytest.raises(ProviderUnavailable, match='rate limit'):
                IQAirCollector('key').fetch_current(1.0, 2.0)

        with patch(REQUESTS_GET, side_effect=requests.exceptions.Timeout('slow')):
            with pytest.raises(ProviderUnavailable, match='network error'):
                IQAirCollector('key').fetch_current(1.0, 2.0)


class TestWAQI:

    def _feed(self, aqi=88):
        return {
            'status': 'ok',
            'data': {
                'aqi': aqi,
                'iaqi': {'pm25': {'v': 88}, 'no2': {'v': 14.2}, 't': {'v': 20}, 'h': {'v': 60}},
                'city': {'name': 'Dhaka US Embassy', 'geo': [23.91, 90.41]},
            },
        }

    def test_reading_filters_weather_keys(self):
        with patch(REQUESTS_GET, return_value=_response(self._feed())):
            reading = WAQICollector('token').fetch_current(23.81, 90.41)

        assert reading.kind == AGGREGATOR
        assert reading.index == 88
        assert {p.name for p in reading.pollutants} == {'PM2.5', 'NO2'}
        assert 11 < reading.distance_km < 11.3
        assert reading.confidence == 85

    def test_offline_station(self):
        with patch(REQUESTS_GET, return_value=_response(self._feed(aqi='-'))):
            assert WAQICollector('token').fetch_current(23.81, 90.41) is None

    def test_invalid_key(self):
        with patch(REQUESTS_GET, return_value=_response({'status': 'error', 'data': 'Invalid key'})):
            with pytest.raises(ProviderUnavailable, match='API key is invalid'):
                WAQICollector('bad').fetch_current(1.0, 2.0)

    def test_station_outside_radius(self):
        with patch(REQUESTS_GET, return_value=_response(self._feed())):
            collector = WAQICollector('token')
            assert collector.find_nearest_station(23.81, 90.41, 5) is None
            assert collector.find_nearest_station(23.81, 90.41, 50).distance_km < 50


class TestNASAPower:

    PAYLOAD = {'properties': {'parameter': {'AOD_55': {
        '20250303': -999, '20250305': 0.25, '20250308': 0.12,
    }}}}

    def test_latest_valid_aod(self):
        with patch(REQUESTS_GET, return_value=_response(self.PAYLOAD)) as get:
            reading = NASAPowerCollector(today=lambda: TODAY).fetch_current(23.81, 90.41)

        params = get.call_args.kwargs['params']
        assert (params['start'], params['end']) == ('20250303', '20250309')
        assert reading.kind == SATELLITE
        assert reading.index == 75
        assert reading.confidence == 70
        assert reading.pollutants[0].concentration == 12

    def test_cloudy_week(self):
        payload = {'properties': {'parameter': {'AOD_55': {'20250308': -999}}}}
        with patch(REQUESTS_GET, return_value=_response(payload)):
            assert NASAPowerCollector(today=lambda: TODAY).fetch_current(1.0, 2.0) is None

    def test_history_points(self):
        with patch(REQUESTS_GET, return_value=_response(self.PAYLOAD)):
            points = NASAPowerCollector().fetch_history(1.0, 2.0, date(2025, 3, 1), date(2025, 3, 9))

        assert [p.date for p in points] == ['2025-03-05', '2025-03-08']
        assert [p.index for p in points] == [100, 75]
        assert all(p.source == SATELLITE and p.confidence == 0.6 for p in points)


class TestOpenAQ:

    STATION = {
        'id': 1, 'name': 'Station A', 'locality': 'Dhaka',
        'coordinates': {'latitude': 23.82, 'longitude': 90.41},
        'sensors': [{'id': 11, 'parameter': {'name': 'pm25'}}, {'id': 12, 'parameter': {'name': 'pm10'}}],
    }

    def _get(self, url, params=None, headers=None, timeout=None):
        assert headers['X-API-Key'] == 'key'
        if url.endswith('/latest'):
            return _response({'results': [{'sensorsId': 11, 'value': 20.0}, {'sensorsId': 12, 'value': 40.0}]})
        return _response({'results': [self.STATION]})

    def test_current_reading_from_nearest_station(self):
        with patch(REQUESTS_GET, side_effect=self._get):
            reading = OpenAQCollector('key').fetch_current(23.81, 90.41)

        assert reading.kind == GROUND_STATION
        assert reading.index == 80
        assert reading.confidence == 95
        assert reading.city == 'Dhaka'
        assert [p.name for p in reading.pollutants] == ['PM2.5', 'PM10']

    def test_station_search_respects_radius(self):
        with patch(REQUESTS_GET, side_effect=self._get) as get:
            collector = OpenAQCollector('key')
            assert collector.find_nearest_station(23.81, 90.41, 50).distance_km == pytest.approx(1.1, abs=0.1)
            assert 'bbox' in get.call_args_list[0].kwargs['params']

        far = dict(self.STATION, coordinates={'latitude': 24.81, 'longitude': 90.41})
        with patch(REQUESTS_GET, return_value=_response({'results': [far]})):
            assert OpenAQCollector('key').find_nearest_station(23.81, 90.41, 50) is None

    def test_missing_key(self):
        with pytest.raises(ProviderUnavailable):
            OpenAQCollector(None).fetch_current(1.0, 2.0)

    def test_station_confidence(self):
        assert station_confidence({'pm25': 10}) == 95
        assert station_confidence({'pm10': 10}) == 92
        assert station_confidence({'o3': 10}) == 90

    def test_bounding_box_contains_point(self):
        min_lng, min_lat, max_lng, max_lat = (float(v) for v in bounding_box(23.81, 90.41, 50).split(','))
        assert min_lat < 23.81 < max_lat
        assert min_lng < 90.41 < max_lng

    def test_daily_averages(self):
        rows = ([{'date': '2025-03-01', 'parameter': 'pm25', 'value': 12.0}] * 12
                + [{'date': '2025-03-02', 'parameter': 'pm25', 'value': 30.0},
                   {'date': '2025-03-02', 'parameter': 'pm25', 'value': 40.8},
                   {'date': '2025-03-02', 'parameter': 'no2', 'value': 21.0},
                   {'date': '2025-02-20', 'parameter': 'pm25', 'value': 99.0}])

        points = daily_points_from_measurements(rows, date(2025, 3, 1), date(2025, 3, 9))

        assert [p.date for p in points] == ['2025-03-01', '2025-03-02']
        assert (points[0].pm25, points[0].index, points[0].confidence) == (12.0, 50, 1.0)
        assert (points[1].pm25, points[1].no2, points[1].index, points[1].confidence) == (35.4, 21.0, 100, 0.7)
        assert points[1].pm10 == 0.0


class TestNominatim:

    def test_forward(self):
        results = [{'lat': '48.8566', 'lon': '2.3522', 'display_name': 'Paris, France',
                    'address': {'city': 'Paris', 'country': 'France'}}]
        with patch(REQUESTS_GET, return_value=_response(results)) as get:
            place = NominatimGeocoder().forward('Paris')

        assert get.call_args.kwargs['headers']['User-Agent']
        assert place == {'city': 'Paris', 'country': 'France', 'lat': 48.8566, 'lng': 2.3522,
                         'display_name': 'Paris, France'}

    def test_forward_not_found(self):
        with patch(REQUESTS_GET, return_value=_response([])):
            with pytest.raises(ProviderUnavailable, match='not found'):
                NominatimGeocoder().forward('Atlantis')

    def test_reverse_uses_town(self):
        with patch(REQUESTS_GET, return_value=_response({'address': {'town': 'Sylhet', 'country': 'Bangladesh'}})):
            assert NominatimGeocoder().reverse(24.9, 91.87) == {'city': 'Sylhet', 'country': 'Bangladesh'}
