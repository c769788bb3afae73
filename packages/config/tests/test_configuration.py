"""Tests for BaseHierarchicalConfiguration."""

import pytest

from treeknobs_common import EventType
from treeknobs_config import (
    BaseHierarchicalConfiguration,
    ConfigurationRuntimeError,
    ConversionError,
    DefaultExpressionEngine,
    DefaultExpressionSymbols,
    DefaultListDelimiterHandler,
    DEFAULT_EXPRESSION_ENGINE,
    ImmutableNode,
    InMemoryNodeModel,
    InvalidArgumentError,
    NoSuchKeyError,
    SubnodeConfiguration,
)


class TestConstruction:
    """Tests for creating configurations."""

    def test_empty(self):
        """Test an empty configuration."""
        config = BaseHierarchicalConfiguration()
        assert config.is_empty()
        assert config.size() == 0
        assert isinstance(config.model, InMemoryNodeModel)

    def test_from_root_node(self):
        """Test creating a configuration from a node."""
        config = BaseHierarchicalConfiguration(ImmutableNode("config", children=[ImmutableNode("a", 1)]))
        assert config.get_root_element_name() == "config"
        assert config.get("a") == 1

    def test_from_model(self):
        """Test creating a configuration on an existing model."""
        model = InMemoryNodeModel()
        config = BaseHierarchicalConfiguration(model)
        assert config.get_model() is model
        assert config.synchronizer is model.synchronizer

    def test_to_dict(self, config, sample_config_dict):
        """Test converting the content to a dictionary."""
        assert config.to_dict() == sample_config_dict


class TestSettings:
    """Tests for configuration settings."""

    def test_defaults(self, config):
        """Test the default settings."""
        assert config.expression_engine is DEFAULT_EXPRESSION_ENGINE
        assert config.throw_exception_on_missing is False

    def test_expression_engine_none_resets(self, config):
        """Test that None restores the default engine."""
        config.expression_engine = DefaultExpressionEngine(DefaultExpressionSymbols(property_delimiter="/", escaped_delimiter="//"))
        assert config.get("database/host") == "localhost"

        config.expression_engine = None
        assert config.expression_engine is DEFAULT_EXPRESSION_ENGINE

    def test_list_delimiter_handler_required(self, config):
        """Test that the list delimiter handler cannot be None."""
        with pytest.raises(InvalidArgumentError):
            config.list_delimiter_handler = None


class TestReading:
    """Tests for reading properties."""

    def test_get_property(self, config):
        """Test raw property access."""
        assert config.get_property("database.host") == "localhost"
        assert config.get_property("tables.table.name") == ["users", "documents"]
        assert config.get_property("tables.table[@type]") == "system"
        assert config.get_property("missing") is None

    def test_typed_getters(self, config):
        """Test conversions."""
        config.add_property("flags.debug", "yes")
        config.add_property("flags.ratio", "0.5")
        config.add_property("flags.count", "12")

        assert config.get_int("database.port") == 5432
        assert config.get_string("database.port") == "5432"
        assert config.get_bool("flags.debug") is True
        assert config.get_float("flags.ratio") == 0.5
        assert config.get_int("flags.count") == 12
        assert config.get_list("tables.table.name") == ["users", "documents"]
        assert config.get_list("database.host") == ["localhost"]

    def test_conversion_error(self, config):
        """Test values that cannot be converted."""
        with pytest.raises(ConversionError) as exc_info:
            config.get_int("database.host")
        assert exc_info.value.context["key"] == "database.host"

        with pytest.raises(ConversionError):
            config.get_bool("database.host")

    def test_missing_keys(self, config):
        """Test missing keys with and without defaults."""
        assert config.get("missing") is None
        assert config.get("missing", "fallback") == "fallback"
        assert config.get_int("missing", 3) == 3

        config.throw_exception_on_missing = True
        with pytest.raises(NoSuchKeyError):
            config.get("missing")
        with pytest.raises(KeyError):
            config.get_string("missing")
        assert config.get("missing", None) is None

    def test_interpolation(self, config, env_vars):
        """Test variables referring to other keys and the environment."""
        env_vars(TREEKNOBS_TEST_USER="alice")
        config.add_property("url", "postgres://${env:TREEKNOBS_TEST_USER}@${database.host}:${database.port}")
        config.add_property("port_copy", "${database.port}")

        assert config.get_string("url") == "postgres://alice@localhost:5432"
        assert config.get("port_copy") == 5432
        assert config.get_property("port_copy") == "${database.port}"

    def test_contains_key(self, config):
        """Test key existence."""
        assert config.contains_key("database.host")
        assert "tables.table.name" in config
        assert not config.contains_key("tables.table.fields")

    def test_keys(self, config):
        """Test listing the keys in document order."""
        assert config.keys() == [
            "tables.table[@type]",
            "tables.table.name",
            "tables.table.fields.field.name",
            "database.host",
            "database.port",
        ]
        assert config.keys("database") == ["database.host", "database.port"]
        assert config.size() == 5

    def test_max_index(self, config):
        """Test the highest index of a key."""
        assert config.max_index("tables.table") == 1
        assert config.max_index("database") == 0
        assert config.max_index("missing") == -1


class TestUpdating:
    """Tests for changing properties."""

    def test_add_and_set_property(self, config):
        """Test adding and replacing values."""
        config.add_property("database.replica", "r1")
        config.add_property("database.replica", ["r2", "r3"])
        assert config.get("database.replica") == ["r1", "r2", "r3"]

        config.set_property("database.replica", "only")
        assert config.get("database.replica") == "only"

    def test_list_delimiter_splitting(self, config):
        """Test that the list delimiter handler splits values."""
        config.add_property("a", "1,2")
        assert config.get("a") == "1,2"

        config.list_delimiter_handler = DefaultListDelimiterHandler()
        config.set_property("b", "1, 2,3")
        assert config.get("b") == ["1", "2", "3"]

    def test_clear_property_and_tree(self, config):
        """Test removing values and sub trees."""
        config.clear_property("database.port")
        assert not config.contains_key("database.port")

        config.clear_tree("tables")
        assert config.keys() == ["database.host"]

    def test_clear(self, config):
        """Test removing all content."""
        config.clear()
        assert config.is_empty()

    def test_add_nodes(self, config):
        """Test adding existing nodes."""
        config.add_nodes("database", [ImmutableNode("user", "admin")])
        assert config.get("database.user") == "admin"

    def test_events(self, config):
        """Test configuration change events."""
        received = []
        config.add_event_listener(received.append)

        config.set_property("database.host", "remote")
        config.clear_property("database.port")

        assert [e.type for e in received] == [EventType.SET_PROPERTY, EventType.CLEAR_PROPERTY]
        assert received[0].topic == "configuration"
        assert received[0].payload == {"key": "database.host", "value": "remote"}
        assert received[0].source is config
        assert config.remove_event_listener(received.append)


class TestClone:
    """Tests for cloning configurations."""

    def test_clone_is_independent(self, config):
        """Test that clone and original do not share changes."""
        clone = config.clone()
        clone.set_property("database.host", "clone")
        config.set_property("database.port", 1)

        assert config.get("database.host") == "localhost"
        assert clone.get("database.port") == 5432
        assert clone.model is not config.model

    def test_clone_copies_settings(self, config):
        """Test that settings are copied."""
        config.throw_exception_on_missing = True
        config.interpolator.register_lookup("const", {"x": "y"}.get)

        clone = config.clone()

        assert clone.throw_exception_on_missing
        assert clone.interpolator is not config.interpolator
        clone.add_property("v", "${const:x}")
        assert clone.get("v") == "y"

    def test_clone_has_no_listeners(self, config):
        """Test that listeners are not copied."""
        received = []
        config.add_event_listener(received.append)

        config.clone().set_property("a", 1)

        assert received == []

    def test_clone_interpolates_own_values(self, config):
        """Test that variables of a clone refer to the clone."""
        config.add_property("ref", "${database.host}")
        clone = config.clone()
        clone.set_property("database.host", "clone-host")

        assert clone.get("ref") == "clone-host"
        assert config.get("ref") == "localhost"


class TestSubConfigurations:
    """Tests for sub configurations of a configuration."""

    def test_configuration_at_copy(self, config):
        """Test an independent sub configuration."""
        sub = config.configuration_at("tables.table(0)")

        assert not isinstance(sub, SubnodeConfiguration)
        assert sub.get("name") == "users"
        assert sub.get("[@type]") == "system"

        sub.set_property("name", "changed")
        assert config.get("tables.table(0).name") == "users"

    def test_configuration_at_inherits_settings(self, config):
        """Test settings and variables of independent sub configurations."""
        config.throw_exception_on_missing = True
        config.add_property("tables.table(0).label", "${database.host}")

        sub = config.configuration_at("tables.table(0)")

        assert sub.throw_exception_on_missing
        assert sub.get("label") == "localhost"

    @pytest.mark.parametrize("key", ["tables.table", "missing", "tables.table[@type]"])
    def test_configuration_at_requires_single_node(self, config, key):
        """Test keys not selecting exactly one node."""
        with pytest.raises(ConfigurationRuntimeError):
            config.configuration_at(key)
        with pytest.raises(ConfigurationRuntimeError):
            config.configuration_at(key, support_updates=True)
        assert config.model.tracked_selectors() == []

    def test_configurations_at(self, config):
        """Test one configuration per selected node."""
        subs = config.configurations_at("tables.table")
        assert [s.get("name") for s in subs] == ["users", "documents"]

    def test_configurations_at_with_updates(self, config):
        """Test connected configurations for several nodes."""
        subs = config.configurations_at("tables.table", support_updates=True)

        assert all(isinstance(s, SubnodeConfiguration) for s in subs)
        subs[1].set_property("name", "docs")
        assert config.get("tables.table(1).name") == "docs"
        assert subs[0].get_root_selector().key == "tables(0).table(0)"

    def test_child_configurations_at(self, config):
        """Test configurations for the children of a node."""
        subs = config.child_configurations_at("tables.table(0).fields")
        assert [s.get("name") for s in subs] == ["uid", "uname"]
        assert config.child_configurations_at("tables.table") == []

    def test_child_configurations_at_with_updates(self, config):
        """Test connected configurations for children."""
        subs = config.child_configurations_at("database", support_updates=True)

        assert [s.get_root_element_name() for s in subs] == ["host", "port"]
        subs[0].set_property("[@primary]", True)
        assert config.get("database.host[@primary]") is True
