"""Tests for loading cdk/config.xml."""

import pytest

from stacks.config import load_config


class TestDefaults:
    """The shipped config.xml."""

    def test_site(self, config):
        assert config.site.domain_name == "mpt.solutions"
        assert config.site.host_prefix == "www"
        assert config.site.cluster_name == "mpt-solutions-cdk"
        assert config.site.allowed_cidrs == (("0.0.0.0/0", "Anywhere"),)

    def test_environment(self, config):
        assert config.environment.account == "424156232756"
        assert config.environment.region == "us-east-1"

    def test_database(self, config):
        assert config.database.name == "wordpress"
        assert config.database.username == "wpdbadmin"
        assert config.database.min_capacity == 8
        assert config.database.max_capacity == 32
        assert config.database.auto_pause_minutes == 10

    def test_container_and_storage(self, config):
        assert config.container.image == "wordpress"
        assert (config.container.cpu, config.container.memory_mib) == (256, 512)
        assert config.container.port == 80
        assert config.storage.mount_path == "/var/www/html"

    def test_scaling_and_health_check(self, config):
        assert (config.scaling.min_tasks, config.scaling.max_tasks) == (1, 2)
        assert config.scaling.cpu_target_percent == 75
        assert config.scaling.memory_target_percent == 75
        assert config.health_check.path == "/index.php"
        assert config.health_check.healthy_http_codes == "200,302"
        assert config.health_check.grace_period_seconds == 180


class TestLoading:
    """Alternate files and value handling."""

    def test_explicit_path(self, write_config):
        path = write_config(domain=("mpt.solutions</domain_name>", "example.org</domain_name>"))

        assert load_config(path).site.domain_name == "example.org"
        assert load_config(str(path)).site.domain_name == "example.org"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.xml")

    def test_fractional_capacity(self, write_config):
        path = write_config(cap=("<min_capacity>8</min_capacity>", "<min_capacity>0.5</min_capacity>"))

        assert load_config(path).database.min_capacity == 0.5

    def test_http_codes_normalized(self, write_config):
        path = write_config(codes=("200,302", " 200, 302 "))

        assert load_config(path).health_check.healthy_http_codes == "200,302"

    def test_cidr_description_defaults_to_cidr(self, write_config):
        path = write_config(
            cidr=(
                '<cidr description="Anywhere">0.0.0.0/0</cidr>',
                '<cidr>10.1.0.0/16</cidr><cidr description="Office">192.0.2.0/24</cidr>',
            )
        )

        assert load_config(path).site.allowed_cidrs == (
            ("10.1.0.0/16", "10.1.0.0/16"),
            ("192.0.2.0/24", "Office"),
        )


class TestValidation:
    """Invalid entries raise ValueError naming the element."""

    def test_empty_value(self, write_config):
        path = write_config(name=("<name>wordpress</name>", "<name> </name>"))

        with pytest.raises(ValueError, match="database/name"):
            load_config(path)

    def test_missing_element(self, write_config):
        path = write_config(image=("<image>wordpress</image>", ""))

        with pytest.raises(ValueError, match="container/image"):
            load_config(path)

    def test_non_integer(self, write_config):
        path = write_config(cpu=("<cpu>256</cpu>", "<cpu>quarter</cpu>"))

        with pytest.raises(ValueError, match="container/cpu> must be an integer"):
            load_config(path)

    def test_non_numeric_capacity(self, write_config):
        path = write_config(cap=("<max_capacity>32</max_capacity>", "<max_capacity>lots</max_capacity>"))

        with pytest.raises(ValueError, match="database/max_capacity> must be a number"):
            load_config(path)

    def test_capacity_bounds_reversed(self, write_config):
        path = write_config(cap=("<min_capacity>8</min_capacity>", "<min_capacity>64</min_capacity>"))

        with pytest.raises(ValueError, match="min_capacity"):
            load_config(path)

    def test_task_bounds_reversed(self, write_config):
        path = write_config(tasks=("<min_tasks>1</min_tasks>", "<min_tasks>3</min_tasks>"))

        with pytest.raises(ValueError, match="min_tasks"):
            load_config(path)

    @pytest.mark.parametrize("value", ["0", "101"])
    def test_percent_out_of_range(self, write_config, value):
        path = write_config(
            cpu=("<cpu_target_percent>75</cpu_target_percent>", f"<cpu_target_percent>{value}</cpu_target_percent>")
        )

        with pytest.raises(ValueError, match="between 1 and 100"):
            load_config(path)

    def test_no_allowed_cidrs(self, write_config):
        path = write_config(cidr=('<cidr description="Anywhere">0.0.0.0/0</cidr>', ""))

        with pytest.raises(ValueError, match="allowed_cidrs"):
            load_config(path)

    @pytest.mark.parametrize("codes", ["200,abc", "200,3020", "200,"])
    def test_bad_http_codes(self, write_config, codes):
        path = write_config(codes=("200,302", codes))

        with pytest.raises(ValueError, match="invalid HTTP code"):
            load_config(path)
