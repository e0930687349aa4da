import pytest

from pf_forecast.defaults import _read_config, get_config_value, get_forecast_config, load_config


def test_load_config_returns_independent_copies():
    first = load_config('forecast')
    first['default_allocations']['profit'] = 0.99

    assert load_config('forecast')['default_allocations']['profit'] == pytest.approx(0.05)
    assert get_forecast_config() is not get_forecast_config()


def test_config_file_is_parsed_once():
    load_config('forecast')
    hits = _read_config.cache_info().hits

    load_config('forecast')
    get_config_value('forecast', 'rollout', 'default_quarters')

    assert _read_config.cache_info().hits == hits + 2


def test_get_config_value_walks_keys():
    assert get_config_value('forecast', 'rollout', 'default_quarters') == 4


@pytest.mark.parametrize('keys', [('rollout', 'missing'), ('rollout', 'default_quarters', 'deeper')])
def test_get_config_value_missing_path_gives_default(keys):
    assert get_config_value('forecast', *keys, default='fallback') == 'fallback'


def test_get_config_value_missing_file_gives_default():
    assert get_config_value('no_such_file', 'anything', default=3) == 3


def test_load_config_unknown_name_raises():
    with pytest.raises(FileNotFoundError):
        load_config('no_such_file')
