import pandera.pandas as pa

SUBSET_SCHEMA = pa.DataFrameSchema(
    columns={
        "name": pa.Column(str, unique=True, coerce=True),
        "width": pa.Column(int, checks=pa.Check.gt(0), coerce=True),
        "height": pa.Column(int, checks=pa.Check.gt(0), coerce=True),
    },
    checks=[
        pa.Check(lambda df: len(df) > 0, element_wise=False, error="Subset list is empty"),
    ],
)

FEATURE_SCHEMA = pa.DataFrameSchema(
    columns={
        "x": pa.Column(float, checks=pa.Check.ge(0), coerce=True),
        "y": pa.Column(float, checks=pa.Check.ge(0), coerce=True),
        "word": pa.Column(int, checks=pa.Check.ge(0), coerce=True),
    },
)

BBOX_SCHEMA = pa.DataFrameSchema(
    columns={
        "name": pa.Column(str, coerce=True),
        "left": pa.Column(float, coerce=True),
        "top": pa.Column(float, coerce=True),
        "right": pa.Column(float, coerce=True),
        "bottom": pa.Column(float, coerce=True),
    },
    checks=[
        pa.Check(
            lambda df: (df["right"] >= df["left"]) & (df["bottom"] >= df["top"]),
            error="Box corners must satisfy right >= left and bottom >= top",
        ),
        pa.Check(lambda df: len(df) > 0, element_wise=False, error="Annotation file is empty"),
    ],
)
