"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import Mock


BASE_URL = "https://test.example.com/odata/Test.svc"


@pytest.fixture
def mock_session():
    """Create a mock ODataSession."""
    session = Mock()
    session.cfg = Mock()
    session.base = BASE_URL
    session.timeout = 60.0
    session.verify = True
    session.session = Mock()
    return session


@pytest.fixture
def sample_odata_response():
    """Sample OData v2 response with an inline count."""
    return {
        "d": {
            "__count": "42",
            "results": [
                {"ID": 1, "Name": "Test 1", "Active": True, "CreatedAt": "2024-01-31T10:15:00"},
                {"ID": 2, "Name": "Test 2", "Active": False, "CreatedAt": None},
            ],
        }
    }


@pytest.fixture
def sample_metadata_xml():
    """Sample OData $metadata XML."""
    return """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="1.0" xmlns:edmx="http://schemas.microsoft.com/ado/2007/06/edmx">
  <edmx:DataServices m:DataServiceVersion="2.0" xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata">
    <Schema Namespace="TestService" xmlns="http://schemas.microsoft.com/ado/2008/09/edm">
      <EntityType Name="TestEntity">
        <Key>
          <PropertyRef Name="ID"/>
        </Key>
        <Property Name="ID" Type="Edm.String" Nullable="false"/>
        <Property Name="Name" Type="Edm.String"/>
      </EntityType>
      <EntityType Name="Orders">
        <Property Name="OrderID" Type="Edm.Int32"/>
      </EntityType>
      <EntityType Name="Address">
        <Property Name="City" Type="Edm.String"/>
      </EntityType>
      <EntityContainer Name="TestService" m:IsDefaultEntityContainer="true">
        <EntitySet Name="TestEntities" EntityType="TestService.TestEntity"/>
        <EntitySet Name="Orders" EntityType="TestService.Orders"/>
        <FunctionImport Name="GetTopSellers" ReturnType="Collection(TestService.TestEntity)" m:HttpMethod="GET"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""


@pytest.fixture
def sample_atom_service_document():
    """Sample AtomPub service document."""
    return """<?xml version="1.0" encoding="utf-8"?>
<app:service xml:base="https://test.example.com/odata/Test.svc/"
    xmlns:app="http://www.w3.org/2007/app"
    xmlns:atom="http://www.w3.org/2005/Atom"
    xmlns:sap="http://www.sap.com/Protocols/SAPData">
  <app:workspace>
    <atom:title>Default</atom:title>
    <app:collection href="Products">
      <atom:title>Products</atom:title>
    </app:collection>
    <app:collection href="/Categories">
      <atom:title>Categories</atom:title>
    </app:collection>
    <app:collection href="Suppliers"/>
  </app:workspace>
</app:service>"""


@pytest.fixture
def sample_json_service_document():
    """Sample OData v4 JSON service document."""
    return """{
  "@odata.context": "$metadata",
  "value": [
    {"name": "Zebra", "kind": "EntitySet", "url": "Zebra"},
    {"name": "apple", "kind": "EntitySet", "url": "apple"},
    {"name": "Banana", "kind": "Singleton"},
    {"kind": "EntitySet", "url": "Nameless"}
  ]
}"""


@pytest.fixture
def make_rows():
    """Factory for simple rows with sequential IDs."""
    def _make(n, start=0):
        return [{"ID": i, "Name": f"Row {i}"} for i in range(start, start + n)]
    return _make
