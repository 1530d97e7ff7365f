profiles_sql = """
CREATE TABLE profiles (
    id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,
    name TEXT,
    username TEXT UNIQUE NOT NULL,
    avatar TEXT,
    created_at TIMESTAMPTZ DEFAULT now()
);
"""

listings_sql = """
CREATE TYPE listing_condition AS ENUM ('new', 'like-new', 'good', 'fair', 'poor');

CREATE TABLE listings (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,

    title TEXT NOT NULL,
    description TEXT NOT NULL,
    price TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'Books',
    condition listing_condition NOT NULL DEFAULT 'like-new',
    images TEXT[] NOT NULL DEFAULT '{}',
    location JSONB NOT NULL,

    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    -- Assigned here only; the API never accepts it from the client
    expires_at TIMESTAMPTZ NOT NULL DEFAULT now() + interval '48 hours'
);
"""

listings_bucket_sql = """
INSERT INTO storage.buckets (id, name, public) VALUES ('listings', 'listings', true);
"""
