"""Redis Lua scripts for the distributed token bucket.

The script runs inside Redis, so the read-refill-consume-write sequence
for one key never interleaves with another caller on the same key.
"""

# KEYS[1] = bucket key (hash with fields 'tokens' and 'ts')
# ARGV[1] = capacity
# ARGV[2] = refill rate (tokens per second)
# ARGV[3] = now (seconds, fractional)
# ARGV[4] = TTL for the bucket key (seconds)
# Returns: {allowed, remaining}
# An absent key is a full bucket, so expiry only ever hands out a fresh one.
# 'ts' never moves backwards, even when a replica's clock lags behind.
TOKEN_BUCKET_SCRIPT = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local refill_rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])
    local ttl = tonumber(ARGV[4])

    local state = redis.call('HMGET', key, 'tokens', 'ts')
    local tokens = tonumber(state[1])
    local last_refill = tonumber(state[2])
    if tokens == nil or last_refill == nil then
        tokens = capacity
        last_refill = now
    end

    local elapsed = math.max(0, now - last_refill)
    local refilled = math.min(capacity, tokens + elapsed * refill_rate)
    local stamp = math.max(last_refill, now)

    if refilled >= 1 then
        local left = refilled - 1
        redis.call('HSET', key, 'tokens', tostring(left), 'ts', tostring(stamp))
        redis.call('EXPIRE', key, ttl)
        return {1, math.floor(left)}
    end

    -- Keep the partial refill without consuming
    redis.call('HSET', key, 'tokens', tostring(refilled), 'ts', tostring(stamp))
    redis.call('EXPIRE', key, ttl)
    return {0, 0}
"""
