from sqlalchemy import BigInteger, Integer, JSON, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Column types shared by the models. The same schema has to run on Postgres
# and on the in-memory SQLite store used by demo mode and the tests; SQLite
# only auto-increments INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JSONDoc = JSON().with_variant(JSONB, "postgresql")
Money = Numeric(12, 2, asdecimal=False)
