# models.py - SQLAlchemy model of the credit applications table
from sqlalchemy import Column, Integer, String, Date, Numeric, TIMESTAMP, MetaData
from sqlalchemy.orm import declarative_base

Base = declarative_base()

KEY_COLUMN = "APP_REF"
VALID_STATUSES = ("APPROVED", "REJECTED", "IN_REVIEW", "PENDING")
DEFAULT_CURRENCY = "ZAR"


class CreditApplication(Base):
    __tablename__ = "CREDITAPPLICATIONS"

    # application
    APP_REF = Column(String(40), primary_key=True)
    APP_SUBMITTED_AT = Column(TIMESTAMP)
    APP_STATUS = Column(String(20))
    APP_PURPOSE = Column(String(100))
    APP_CHANNEL = Column(String(30))

    # requested product
    REQ_PRODUCT_CODE = Column(String(30))
    REQ_PRODUCT_NAME = Column(String(100))
    REQ_PRODUCT_TYPE = Column(String(30))
    REQ_AMOUNT = Column(Numeric(15, 2))
    REQ_TERM_MONTHS = Column(Integer)
    REQ_CCY = Column(String(3))
    REQ_PROD_MIN_AMOUNT = Column(Numeric(15, 2))
    REQ_PROD_MAX_AMOUNT = Column(Numeric(15, 2))
    REQ_PROD_MIN_TERM = Column(Integer)
    REQ_PROD_MAX_TERM = Column(Integer)
    REQ_PROD_BASE_RATE_BPS = Column(Integer)

    # customer
    CUST_ID = Column(String(40))
    CIS_CUSTOMER_NUMBER = Column(String(40), index=True)
    CUST_FIRST_NAME = Column(String(100))
    CUST_LAST_NAME = Column(String(100))
    CUST_DOB = Column(Date)
    CUST_TYPE = Column(String(30))
    CUST_SEGMENT = Column(String(30))
    CUST_RISK_BAND = Column(String(10))
    CUST_EMAIL = Column(String(150))
    CUST_PHONE = Column(String(30))
    ADDR_LINE1 = Column(String(200))
    ADDR_CITY = Column(String(100))
    ADDR_PROVINCE = Column(String(100))
    ADDR_POSTAL_CODE = Column(String(20))

    # affordability and account behaviour
    EMPLOYER_NAME = Column(String(150))
    EMPLOYMENT_TYPE = Column(String(30))
    POSITION_TITLE = Column(String(100))
    GROSS_MONTHLY_INCOME = Column(Numeric(15, 2))
    OTHER_INCOME = Column(Numeric(15, 2))
    INCOME_CCY = Column(String(3))
    INCOME_VERIFIED_FLAG = Column(String(1))
    AVG_BAL_6M = Column(Numeric(15, 2))
    OD_LIMIT_TOTAL = Column(Numeric(15, 2))
    NSF_12M = Column(Integer)
    MAX_DPD = Column(Integer)
    AVG_UTIL_PCT = Column(Numeric(5, 2))

    # scoring
    SCORE_PROVIDER = Column(String(50))
    SCORE_VALUE = Column(Integer)
    SCORE_BAND = Column(String(10))
    SCORE_AS_OF_DATE = Column(Date)
    ELIGIBLE_FLAG = Column(String(1))
    ELIG_FAIL_REASONS = Column(String(500))
    HAS_COLLATERAL = Column(String(1))
    HAS_GUARANTOR = Column(String(1))

    # recommendation
    REC_PRODUCT_CODE = Column(String(30))
    REC_AMOUNT = Column(Numeric(15, 2))
    REC_TERM = Column(Integer)
    REC_APR_BPS = Column(Integer)
    REC_CONDITIONS = Column(String(500))
    REC_RATIONALE = Column(String(1000))


# Allow-list of column identifiers, in table order.
COLUMN_NAMES = tuple(CreditApplication.__table__.columns.keys())


def table_for(settings):
    """Copy of the table bound to the configured schema and table name."""
    return CreditApplication.__table__.to_metadata(
        MetaData(), schema=settings.db_schema, name=settings.db_table
    )
